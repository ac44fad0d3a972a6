from pathlib import Path

import pytest

from paxcore.core.errors import MalformedManifest, ManifestReadError, UnsupportedExtension
from paxcore.packages.formats import (
    ManifestFormat,
    isManifestFileName,
    parseManifest,
    parseManifestFile,
)
from paxcore.packages.model import CloneStep, FlavoredPackage, Version, VersionedPackage, isUrl


REPO = "https://example.org/foo.git"

SAME_PACKAGE = {
    ManifestFormat.YAML: f"""
name: foo
description: A test package
versions:
  - number: "1.2.0"
    steps:
      - clone:
          repository: "{REPO}"
    dependencies:
      - name: bar
        version: "^1.0"
    install: "echo hello"
""",
    ManifestFormat.JSON: f"""
// JSON manifests are read as JSON5
{{
  "name": "foo",
  "description": "A test package",
  "versions": [
    {{
      "number": "1.2.0",
      "steps": [{{"clone": {{"repository": "{REPO}"}}}}],
      "dependencies": [{{"name": "bar", "version": "^1.0"}}],
      "install": "echo hello",
    }},
  ],
}}
""",
    ManifestFormat.TOML: f"""
name = "foo"
description = "A test package"

[[versions]]
number = "1.2.0"
dependencies = [{{ name = "bar", version = "^1.0" }}]
install = "echo hello"

[[versions.steps]]
clone = {{ repository = "{REPO}" }}
""",
    ManifestFormat.RON: f"""
Package(
    name: "foo",
    description: "A test package",
    versions: [
        (
            number: "1.2.0",
            steps: [{{"clone": (repository: "{REPO}")}}],
            dependencies: [(name: "bar", version: Some("^1.0"))],
            install: "echo hello",
        ),
    ],
)
""",
}


def test_same_package_decodes_identically_in_every_format():
    nodes = {fmt: parseManifest(text, fmt) for fmt, text in SAME_PACKAGE.items()}

    reference = nodes[ManifestFormat.YAML]
    assert isinstance(reference, VersionedPackage)
    assert reference.name == "foo"
    version = reference.versions[0]
    assert str(version.number) == "1.2.0"
    assert version.steps == (CloneStep(repository=REPO),)
    assert version.dependencies[0].name == "bar"
    assert version.install == "echo hello"

    for fmt, node in nodes.items():
        assert node == reference, fmt


def test_bytes_input_with_bom_is_accepted():
    data = "\ufeff" + SAME_PACKAGE[ManifestFormat.YAML]
    node = parseManifest(data.encode("utf-8"), ManifestFormat.YAML)
    assert node.name == "foo"


def test_flavored_manifest_lists_unattached_flavors():
    node = parseManifest("name: foo\nflavors: [base, debug]\n", ManifestFormat.YAML)
    assert isinstance(node, FlavoredPackage)
    assert node.flavorNames == ("base", "debug")
    assert all(flavor.node is None for flavor in node.flavors)


def test_author_string_and_legacy_aliases():
    node = parseManifest(
        """
name: foo
author: "Jane Doe <jane@example.org>"
versions:
  - number: "0.1.0"
    pre_built: "https://example.org/foo.tar.gz"
    install_inst: "true"
""",
        ManifestFormat.YAML,
    )
    assert node.metadata.authors[0].name == "Jane Doe"
    assert node.metadata.authors[0].email == "jane@example.org"
    assert node.versions[0].prebuilt == "https://example.org/foo.tar.gz"
    assert node.versions[0].install == "true"


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("name: foo\nflavors: [a]\nversions: [{number: '1.0.0'}]\n", "both"),
        ("name: foo\n", "neither"),
        ("- just\n- a list\n", "mapping"),
        ("versions: [{number: '1.2'}]\n", "1.2"),
        ("versions: [{number: 'v1.2.3'}]\n", "v1.2.3"),
        ("versions: [{number: '1.0.0', dependencies: [{name: bar, version: '>>1'}]}]\n", ">>1"),
        ("versions: [{number: '1.0.0', steps: [{fetch: {url: x}}]}]\n", "fetch"),
        ("versions: [{number: '1.0.0', colour: blue}]\n", "colour"),
        ("versions: []\n", "versions"),
        ("flavors: [a, a]\n", "Duplicate flavor"),
        ("flavors: ['a/b']\n", "name"),
        ("name: [unclosed\n", ""),
    ],
)
def test_malformed_documents(text, fragment):
    with pytest.raises(MalformedManifest) as excInfo:
        parseManifest(text, ManifestFormat.YAML, path=Path("manifest.yaml"))
    assert excInfo.value.format == "yaml"
    assert fragment in str(excInfo.value)


def test_invalid_utf8_is_malformed():
    with pytest.raises(MalformedManifest):
        parseManifest(b"\xff\xfe\xfa", ManifestFormat.JSON)


@pytest.mark.parametrize(
    "ext, expected",
    [
        ("yaml", ManifestFormat.YAML),
        ("yml", ManifestFormat.YAML),
        (".YML", ManifestFormat.YAML),
        ("json", ManifestFormat.JSON),
        ("toml", ManifestFormat.TOML),
        ("ron", ManifestFormat.RON),
    ],
)
def test_fromExtension(ext, expected):
    assert ManifestFormat.fromExtension(ext) is expected


def test_fromExtension_rejects_unknown():
    with pytest.raises(UnsupportedExtension) as excInfo:
        ManifestFormat.fromExtension("xml")
    assert excInfo.value.validExtensions == ("yaml", "yml", "json", "toml", "ron")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("manifest.yaml", True),
        ("manifest.YML", True),
        ("manifest.ron", True),
        ("manifest.xml", False),
        ("manifest", False),
        ("Manifest.yaml", False),
        ("other.json", False),
        ("manifest.yaml.bak", False),
    ],
)
def test_isManifestFileName(name, expected):
    assert isManifestFileName(name) is expected


def test_parseManifestFile_dispatches_on_extension(tmp_path):
    path = tmp_path / "manifest.toml"
    path.write_text(SAME_PACKAGE[ManifestFormat.TOML], encoding="utf-8")
    assert parseManifestFile(path).name == "foo"


def test_parseManifestFile_missing_file(tmp_path):
    with pytest.raises(ManifestReadError) as excInfo:
        parseManifestFile(tmp_path / "manifest.yaml")
    assert excInfo.value.path == tmp_path / "manifest.yaml"


def test_parseManifestFile_unsupported_extension(tmp_path):
    with pytest.raises(UnsupportedExtension):
        parseManifestFile(tmp_path / "manifest.xml")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://example.org/foo.tar.gz", True),
        ("file:///srv/foo.tar.gz", True),
        ("/srv/foo.tar.gz", False),
        ("build/foo.tar.gz", False),
        ("C:\\pkgs\\foo.zip", False),
    ],
)
def test_isUrl(value, expected):
    assert isUrl(value) is expected


def test_version_toManifest_keeps_set_fields_only():
    version = Version.model_validate({
        "number": "1.0.0",
        "steps": [{"clone": {"repository": REPO}}],
        "pre_built": "https://example.org/foo.tar.gz",
        "install_inst": "make install",
    })

    assert version.toManifest() == {
        "number": "1.0.0",
        "steps": [{"clone": {"repository": REPO}}],
        "install": "make install",
        "prebuilt": "https://example.org/foo.tar.gz",
    }


ROUND_TRIP_VERSION = Version.model_validate({
    "number": "1.2.0-rc.1+build.7",
    "steps": [{"clone": {"repository": REPO}}],
    "dependencies": [
        {"name": "bar", "version": "^1.0"},
        {"name": "baz", "flavor": "gui/gtk"},
    ],
    "source": "https://example.org/foo-1.2.0.tar.gz",
    "install": 'mkdir -p bin; cp build/"tool"\tbin/tool',
})


@pytest.mark.parametrize("fmt", list(ManifestFormat))
def test_version_round_trips_through_every_format(fmt):
    text = fmt.encode(ROUND_TRIP_VERSION.toManifest())

    decoded = Version.model_validate(fmt.decode(text))

    assert decoded == ROUND_TRIP_VERSION
    assert str(decoded.number) == "1.2.0-rc.1+build.7"


@pytest.mark.parametrize("fmt", list(ManifestFormat))
def test_encoded_package_parses_back(fmt):
    document = {"name": "foo", "versions": [ROUND_TRIP_VERSION.toManifest(), {"number": "2.0.0", "steps": [], "install": ""}]}

    node = parseManifest(fmt.encode(document), fmt)

    assert isinstance(node, VersionedPackage)
    assert node.name == "foo"
    assert node.versions[0] == ROUND_TRIP_VERSION
    assert str(node.versions[1].number) == "2.0.0"
