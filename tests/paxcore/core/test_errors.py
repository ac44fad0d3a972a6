from pathlib import Path

from paxcore.core.errors import (
    CyclicDependency,
    ExecutionError,
    FlavorNotFound,
    HostCommandError,
    MalformedInstallInstruction,
    ManifestError,
    PaxError,
    PluginInvocationError,
    ResolutionError,
    SchemaError,
    formatChain,
)


def test_formatChain():
    assert formatChain([("a", ""), ("b", "base"), ("c", "gui/gtk")]) == "a -> b/base -> c/gui/gtk"
    assert formatChain([]) == ""


def test_hierarchy():
    assert issubclass(SchemaError, ManifestError)
    assert issubclass(CyclicDependency, ResolutionError)
    assert issubclass(HostCommandError, ExecutionError)
    for errType in (ManifestError, ResolutionError, ExecutionError):
        assert issubclass(errType, PaxError)


def test_messages_carry_context():
    err = FlavorNotFound("foo", ("gui", "qt"), available=("gtk",))
    assert "'gui/qt'" in str(err)
    assert "gtk" in str(err)

    err = MalformedInstallInstruction("", 1)
    assert "#2" in str(err)

    err = SchemaError(Path("/pkgs/foo"), "duplicate version 1.0.0")
    assert err.reason == "duplicate version 1.0.0"


def test_plugin_invocation_detail():
    assert "declared failure" in str(PluginInvocationError("clone"))
    assert "no toolchain" in str(PluginInvocationError("clone", "no toolchain"))
    err = PluginInvocationError("clone", cause=KeyError("x"))
    assert "KeyError" in str(err)
    assert err.message is None
