"""
Tests for platform version parsing and ordering
"""

# Third Party
import pytest

# Local
from stor8.version import MINIMUM_VERSION, PlatformVersion


@pytest.mark.parametrize(
    ["version_str", "expected"],
    [
        ("1.16", PlatformVersion(1, 16, 0)),
        ("v1.16.3", PlatformVersion(1, 16, 3)),
        ("v1.21.2-gke.1500", PlatformVersion(1, 21, 2)),
        ("v1.24.0+k3s1", PlatformVersion(1, 24, 0)),
        ("2", PlatformVersion(2, 0, 0)),
        (" v1.15.0 ", PlatformVersion(1, 15, 0)),
    ],
)
def test_parse_valid(version_str, expected):
    """Make sure plain and git-style versions parse"""
    assert PlatformVersion.parse(version_str) == expected


@pytest.mark.parametrize("version_str", ["", "latest", "v1.x", "1..2", None, 116])
def test_parse_invalid(version_str):
    """Make sure unparseable versions raise ValueError"""
    with pytest.raises(ValueError):
        PlatformVersion.parse(version_str)


def test_parse_passthrough():
    """Make sure parsing an already parsed version returns it unchanged"""
    version = PlatformVersion(1, 20, 1)
    assert PlatformVersion.parse(version) is version


def test_ordering():
    """Make sure versions compare numerically, not lexically"""
    assert PlatformVersion.parse("1.9") < PlatformVersion.parse("1.16")
    assert PlatformVersion.parse("1.15.99") < PlatformVersion.parse("1.16.0")
    assert PlatformVersion.parse("v1.16.0") == PlatformVersion.parse("1.16")
    assert MINIMUM_VERSION <= PlatformVersion.parse("0.0.1")
    assert sorted(
        [PlatformVersion(1, 20), PlatformVersion(1, 9), PlatformVersion(0, 5, 1)]
    ) == [PlatformVersion(0, 5, 1), PlatformVersion(1, 9), PlatformVersion(1, 20)]


def test_string_forms():
    """Make sure both the plain and git forms render"""
    version = PlatformVersion(1, 16, 2)
    assert str(version) == "1.16.2"
    assert version.git_version == "v1.16.2"


def test_hashable():
    """Make sure versions can be used as dict keys"""
    lookup = {PlatformVersion(1, 16): "v1"}
    assert lookup[PlatformVersion.parse("v1.16.0")] == "v1"
