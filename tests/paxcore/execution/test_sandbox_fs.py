import io
import os

import pytest

from paxcore.core.errors import PluginRejected, SandboxPathError
from paxcore.execution.sandbox import (
    PathMapping,
    PluginFileSystem,
    PluginResult,
    PythonSandboxProvider,
    SandboxFileSystem,
)


@pytest.fixture
def dirs(tmp_path):
    src = tmp_path / "src"
    scratch = tmp_path / "scratch"
    staging = tmp_path / "staging"
    for path in (src, scratch, staging):
        path.mkdir()
    (src / "hello.txt").write_text("hi", encoding="utf-8")
    return src, scratch, staging


@pytest.fixture
def fs(dirs):
    src, scratch, staging = dirs
    return SandboxFileSystem([
        PathMapping(src, "/pkg", writable=False),
        PathMapping(scratch, "/tmp", writable=True),
        PathMapping(staging, "/install", writable=True),
    ])


def test_resolves_inside_mounts(fs, dirs):
    src, scratch, _ = dirs
    assert fs.resolve("/pkg/hello.txt") == (src / "hello.txt").resolve()
    assert fs.resolve("/tmp/./a/../b", write=True) == (scratch / "b").resolve()
    assert fs.resolve("/pkg") == src.resolve()


@pytest.mark.parametrize(
    "path",
    [
        "/pkg/../etc/passwd",
        "/pkg/../../etc/passwd",
        "/tmp/../pkg/hello.txt",
        "/..",
        "/etc/passwd",
        "/",
        "pkg/hello.txt",
        "",
        "/pkg/a\0b",
    ],
)
def test_escapes_are_denied(fs, path):
    with pytest.raises(SandboxPathError):
        fs.resolve(path)


def test_read_only_mount_rejects_writes(fs):
    with pytest.raises(SandboxPathError) as excInfo:
        fs.writeText("/pkg/new.txt", "x")
    assert "read-only" in str(excInfo.value)


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_leaving_the_mount_is_denied(fs, dirs, tmp_path):
    src, _, _ = dirs
    secret = tmp_path / "secret.txt"
    secret.write_text("nope", encoding="utf-8")
    try:
        (src / "link").symlink_to(secret)
    except OSError:
        pytest.skip("cannot create symlinks here")

    with pytest.raises(SandboxPathError):
        fs.readText("/pkg/link")


def test_helpers(fs, dirs):
    _, scratch, staging = dirs
    fs.writeText("/tmp/nested/out.txt", "data")
    fs.writeBytes("/install/bin/tool", b"\x7fELF")
    fs.makeDirs("/install/share/doc")

    assert (scratch / "nested" / "out.txt").read_text(encoding="utf-8") == "data"
    assert fs.readBytes("/install/bin/tool") == b"\x7fELF"
    assert fs.readText("/pkg/hello.txt") == "hi"
    assert fs.listDir("/install") == ["bin", "share"]
    assert fs.exists("/install/share/doc")
    assert not fs.exists("/tmp/missing")
    with fs.open("/tmp/nested/out.txt") as fl:
        assert fl.read() == "data"
    assert (staging / "share" / "doc").is_dir()


def test_longest_mount_wins(tmp_path):
    root = tmp_path / "root"
    pkg = tmp_path / "pkg"
    root.mkdir()
    pkg.mkdir()
    fs = SandboxFileSystem([
        PathMapping(root, "/", writable=True),
        PathMapping(pkg, "/pkg", writable=False),
    ])

    assert fs.resolve("/pkg/a") == (pkg / "a").resolve()
    assert fs.resolve("/etc/a", write=True) == (root / "etc" / "a").resolve()
    with pytest.raises(SandboxPathError):
        fs.resolve("/pkg/a", write=True)


def test_invalid_mappings(tmp_path):
    with pytest.raises(ValueError):
        PathMapping(tmp_path, "relative")
    with pytest.raises(ValueError):
        PathMapping(tmp_path, "/a/../b")
    with pytest.raises(ValueError):
        SandboxFileSystem([PathMapping(tmp_path, "/x"), PathMapping(tmp_path, "/x/")])


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, PluginResult(True)),
        (True, PluginResult(True)),
        (False, PluginResult(False)),
        ((False, "broken"), PluginResult(False, "broken")),
        ((True, None), PluginResult(True)),
        (PluginResult(True, "ok"), PluginResult(True, "ok")),
    ],
)
def test_plugin_result_from_return(value, expected):
    assert PluginResult.fromReturn(value) == expected


def test_plugin_result_rejects_other_values():
    with pytest.raises(TypeError):
        PluginResult.fromReturn("yes")


def _run(fs, source: str, entrypoint: str = "process") -> PluginResult:
    instance = PythonSandboxProvider().instantiate(source.encode("utf-8"), fs)
    return instance.call(entrypoint)


def test_python_plugin_reads_and_writes_through_sandbox(fs, dirs):
    _, _, staging = dirs
    source = (
        "import json\n"
        "class Builder:\n"
        "    def run(self):\n"
        "        with open('/pkg/hello.txt') as fl:\n"
        "            text = fl.read()\n"
        "        sandbox.writeText('/install/out.json', json.dumps({'text': text}))\n"
        "        return True, 'done'\n"
        "def process():\n"
        "    return Builder().run()\n"
    )

    assert _run(fs, source) == PluginResult(True, "done")
    assert (staging / "out.json").read_text(encoding="utf-8") == '{"text": "hi"}'


@pytest.mark.parametrize(
    "body",
    [
        "import os\n",
        "from subprocess import run\n",
        "import posixpath\n",
        "import typing\n",
        "import collections\n",
        "import json.decoder\n",
        "from . import helpers\n",
    ],
)
def test_python_plugin_import_allowlist(fs, body):
    with pytest.raises(ImportError):
        PythonSandboxProvider().instantiate(body.encode("utf-8"), fs)


def test_python_plugin_open_outside_mount_traps(fs):
    source = "def process():\n    open('/etc/passwd').read()\n"
    with pytest.raises(SandboxPathError):
        _run(fs, source)


def test_python_plugin_has_no_eval(fs):
    source = "def process():\n    return eval('1')\n"
    with pytest.raises(NameError):
        _run(fs, source)


def test_python_plugin_missing_entrypoint(fs):
    with pytest.raises(AttributeError):
        _run(fs, "x = 1\n")


@pytest.mark.parametrize(
    "source",
    [
        "__import__('os')\n",
        "import json\nx = json.__dict__\n",
        "def process():\n    return process.__globals__\n",
        "def process():\n    return sandbox._fs\n",
        "def process():\n    return (x for x in ()).gi_frame\n",
        "def process():\n    return '{0._fs}'.format(sandbox)\n",
        "from json import __builtins__\n",
        "__builtins__ = {}\n",
        "def process():\n    match sandbox:\n        case object(__class__=cls):\n            return True\n",
    ],
)
def test_python_plugin_introspection_is_rejected(fs, source):
    with pytest.raises(PluginRejected):
        PythonSandboxProvider().instantiate(source.encode("utf-8"), fs)


@pytest.mark.parametrize("attr", ["resolve", "mappings", "hostPath"])
def test_python_plugin_sandbox_has_no_host_paths(fs, attr):
    source = f"def process():\n    return sandbox.{attr}\n"
    with pytest.raises(AttributeError):
        _run(fs, source)


@pytest.mark.parametrize(
    "module, attr",
    [
        ("json", "codecs"),
        ("re", "enum"),
        ("textwrap", "re"),
        ("base64", "binascii"),
    ],
)
def test_python_plugin_modules_do_not_reexport_modules(fs, module, attr):
    source = f"import {module}\ndef process():\n    return {module}.{attr}\n"
    with pytest.raises(AttributeError):
        _run(fs, source)


def test_python_plugin_allowed_module_functions_work(fs):
    source = (
        "import json, hashlib, base64\n"
        "from math import sqrt\n"
        "def process():\n"
        "    digest = hashlib.sha256(b'x').hexdigest()\n"
        "    return True, json.dumps([sqrt(4), len(digest), base64.b64encode(b'a').decode()])\n"
    )
    assert _run(fs, source) == PluginResult(True, '[2.0, 64, "YQ=="]')


def test_python_plugin_file_objects_carry_no_host_path(fs):
    source = (
        "def process():\n"
        "    with open('/pkg/hello.txt') as fl:\n"
        "        text = fl.read()\n"
        "    return True, text + ':' + str(hasattr(fl, 'name'))\n"
    )
    assert _run(fs, source) == PluginResult(True, "hi:False")


def test_python_plugin_errors_name_the_sandbox_path(fs):
    source = (
        "def process():\n"
        "    try:\n"
        "        sandbox.readText('/pkg/missing.txt')\n"
        "    except FileNotFoundError as err:\n"
        "        return False, err.filename\n"
    )
    assert _run(fs, source) == PluginResult(False, "/pkg/missing.txt")


def test_python_plugin_parent_of_a_mount_is_denied(fs):
    source = "def process():\n    sandbox.listDir('/pkg/..')\n"
    with pytest.raises(SandboxPathError):
        _run(fs, source)


def test_plugin_file_system_open_modes(fs, dirs):
    _, scratch, _ = dirs
    view = PluginFileSystem(fs)

    with view.open("/tmp/log.txt", "w") as fl:
        fl.write("one\n")
    assert not hasattr(view, "resolve")
    with view.open("/tmp/log.txt", "a") as fl:
        fl.write("two\n")
    with view.open("/tmp/data.bin", "wb") as fl:
        fl.write(b"\x00\x01")

    assert (scratch / "log.txt").read_text(encoding="utf-8") == "one\ntwo\n"
    assert view.readBytes("/tmp/data.bin") == b"\x00\x01"
    with view.open("/tmp/log.txt", "rb") as fl:
        assert fl.read() == b"one\ntwo\n"
    with pytest.raises(FileExistsError):
        view.open("/tmp/log.txt", "x")
    with pytest.raises(ValueError):
        view.open("/tmp/log.txt", "rw")


def test_plugin_file_system_read_only_files(fs, dirs):
    src, _, _ = dirs
    view = PluginFileSystem(fs)

    with view.open("/pkg/hello.txt") as fl:
        with pytest.raises(io.UnsupportedOperation):
            fl.write("x")
    with pytest.raises(SandboxPathError):
        view.open("/pkg/hello.txt", "a")
    assert (src / "hello.txt").read_text(encoding="utf-8") == "hi"


def test_plugin_file_system_escapes_are_denied(fs):
    view = PluginFileSystem(fs)
    for path in ("/pkg/../etc/passwd", "/etc/passwd", "/tmp/../../x"):
        with pytest.raises(SandboxPathError):
            view.readText(path)
        with pytest.raises(SandboxPathError):
            view.open(path)
