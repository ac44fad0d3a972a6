from pathlib import Path

import pytest

from paxcore.config.layout import PathLayout
from paxcore.config.registries import RepositoryRegistry
from paxcore.core.errors import MalformedManifest
from paxcore.packages.index import DirectoryPackageIndex, MappingPackageIndex, PackageIndex
from paxcore.packages.model import VersionedPackage


def _package(root: Path, name: str, number: str) -> Path:
    pkgDir = root / name
    pkgDir.mkdir(parents=True, exist_ok=True)
    (pkgDir / "manifest.yaml").write_text(
        f"name: {name}\nversions:\n  - number: \"{number}\"\n",
        encoding="utf-8",
    )
    return pkgDir


def test_both_indexes_satisfy_the_protocol(tmp_path):
    assert isinstance(MappingPackageIndex(), PackageIndex)
    assert isinstance(DirectoryPackageIndex([tmp_path]), PackageIndex)


def test_mapping_index():
    leaf = VersionedPackage.model_validate({"versions": [{"number": "1.0.0"}]})
    index = MappingPackageIndex({"foo": leaf})
    assert index.lookup("foo") is leaf
    assert index.lookup("bar") is None
    assert index.names() == ["foo"]


def test_directory_index_earlier_root_wins(tmp_path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    _package(first, "foo", "1.0.0")
    _package(second, "foo", "2.0.0")
    _package(second, "bar", "3.0.0")

    index = DirectoryPackageIndex([first, second])

    assert str(index.lookup("foo").versions[0].number) == "1.0.0"
    assert str(index.lookup("bar").versions[0].number) == "3.0.0"
    assert index.lookup("missing") is None
    assert index.names() == ["bar", "foo"]


def test_directory_index_caches_until_invalidated(tmp_path):
    pkgDir = _package(tmp_path, "foo", "1.0.0")
    index = DirectoryPackageIndex([tmp_path])

    first = index.lookup("foo")
    (pkgDir / "manifest.yaml").write_text('name: foo\nversions: [{number: "1.1.0"}]\n', encoding="utf-8")
    assert index.lookup("foo") is first

    index.invalidate("foo")
    assert str(index.lookup("foo").versions[0].number) == "1.1.0"


def test_missing_package_is_picked_up_later(tmp_path):
    index = DirectoryPackageIndex([tmp_path])
    assert index.lookup("foo") is None

    _package(tmp_path, "foo", "1.0.0")
    assert index.lookup("foo") is not None


@pytest.mark.parametrize("name", ["", ".", "..", "a/b", "..\\x"])
def test_directory_index_rejects_path_like_names(tmp_path, name):
    assert DirectoryPackageIndex([tmp_path]).lookup(name) is None


def test_malformed_package_propagates(tmp_path):
    (tmp_path / "bad").mkdir()
    (tmp_path / "bad" / "manifest.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(MalformedManifest):
        DirectoryPackageIndex([tmp_path]).lookup("bad")


def test_fromLayout_uses_registered_repositories(tmp_path):
    layout = PathLayout.underHome(tmp_path / "home")
    repositories = RepositoryRegistry(layout)
    repositories.add("local", "file:///srv/local.git")
    _package(layout.repositoriesDir / "local", "foo", "1.0.0")

    index = DirectoryPackageIndex.fromLayout(layout, repositories)

    assert layout.repositoriesDir / "local" in index.roots
    assert index.lookup("foo") is not None
