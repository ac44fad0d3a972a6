import pytest

from paxcore.semver.semver import SemVerVersion, parseSemVerVersion


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.2.3",    (1, 2, 3, (), ())),
        ("0.0.1",    (0, 0, 1, (), ())),
        ("1.2.3-alpha",           (1, 2, 3, ("alpha",), ())),
        ("1.2.3-alpha.1",         (1, 2, 3, ("alpha", "1"), ())),
        ("1.2.3+build.1",         (1, 2, 3, (), ("build", "1"))),
        ("1.2.3-alpha+exp.sha",   (1, 2, 3, ("alpha",), ("exp", "sha"))),
    ],
)
def test_parseSemVerVersion_strict_valid(raw, expected):
    v = parseSemVerVersion(raw)
    assert (v.major, v.minor, v.patch, v.prerelease, v.build) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1",        (1, 0, 0, (), ())),
        ("1.2",      (1, 2, 0, (), ())),
        ("0.1",      (0, 1, 0, (), ())),
        ("v1",       (1, 0, 0, (), ())),
        ("v1.2.3",   (1, 2, 3, (), ())),
        ("1.2-rc.1", (1, 2, 0, ("rc", "1"), ())),
    ],
)
def test_parseSemVerVersion_lenient_valid(raw, expected):
    v = parseSemVerVersion(raw, strict=False)
    assert (v.major, v.minor, v.patch, v.prerelease, v.build) == expected


@pytest.mark.parametrize("raw", ["1", "1.2", "v1.2.3", " v1 "])
def test_parseSemVerVersion_strict_rejects_partial_and_prefixed(raw):
    with pytest.raises(ValueError):
        parseSemVerVersion(raw)


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        ".1",
        "1.",
        "1..2",
        "1.2.3.4",
        "01.2.3",
        "1.02.3",
        "1.2.03",
        "1.2.3-",
        "1.2.3+",
        "v",
        "vv1.2.3",
    ],
)
@pytest.mark.parametrize("strict", [True, False])
def test_parseSemVerVersion_invalid(raw, strict):
    with pytest.raises(ValueError):
        parseSemVerVersion(raw, strict=strict)


def test_parseSemVerVersion_rejects_non_string():
    with pytest.raises(TypeError):
        parseSemVerVersion(123)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "a, b",
    [
        ("1.0.0-alpha", "1.0.0-alpha.1"),
        ("1.0.0-alpha.1", "1.0.0-alpha.beta"),
        ("1.0.0-alpha.beta", "1.0.0-beta"),
        ("1.0.0-beta", "1.0.0-beta.2"),
        ("1.0.0-beta.2", "1.0.0-beta.11"),
        ("1.0.0-beta.11", "1.0.0-rc.1"),
        ("1.0.0-rc.1", "1.0.0"),
        ("1.0.0", "1.0.1"),
        ("1.9.0", "1.10.0"),
    ],
)
def test_semver_precedence_order(a, b):
    va = parseSemVerVersion(a)
    vb = parseSemVerVersion(b)
    assert va < vb
    assert vb > va


def test_build_metadata_ignored_in_comparison():
    a = parseSemVerVersion("1.0.0+build.1")
    b = parseSemVerVersion("1.0.0+build.2")
    c = parseSemVerVersion("1.0.0")

    assert a == b
    assert a == c
    assert hash(a) == hash(c)
    assert not (a < b)
    assert not (b < a)


def test_identical_includes_build_metadata():
    a = parseSemVerVersion("1.0.0+build.1")
    assert a.identical(parseSemVerVersion("1.0.0+build.1"))
    assert not a.identical(parseSemVerVersion("1.0.0+build.2"))
    assert not a.identical(parseSemVerVersion("1.0.0"))


def test_str_round_trips_the_canonical_form():
    assert str(parseSemVerVersion("1.2.3-rc.1+sha.5")) == "1.2.3-rc.1+sha.5"
    assert str(SemVerVersion(2, 0, 0)) == "2.0.0"
    assert parseSemVerVersion("1.2.3").core == (1, 2, 3)
    assert parseSemVerVersion("1.2.3-rc.1").isPrerelease
