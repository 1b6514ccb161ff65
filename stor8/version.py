"""
Comparable representation of the orchestration platform's control plane
version
"""

# Standard
from dataclasses import dataclass
from typing import Union
import re

# First Party
import alog

log = alog.use_channel("VERSN")

# Matches plain and git-style versions: 1.16, v1.16.3, v1.21.2-gke.1500,
# v1.24.0+k3s1
_VERSION_EXPR = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+].*)?$")


@dataclass(frozen=True, order=True)
class PlatformVersion:
    """Immutable major.minor.patch version with total ordering"""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, version: Union[str, "PlatformVersion"]) -> "PlatformVersion":
        """Parse a version string. Missing minor/patch parts default to 0 and
        pre-release / build suffixes are ignored.

        Args:
            version:  Union[str, PlatformVersion]
                The version to parse. Already parsed versions are returned
                as-is.

        Returns:
            platform_version:  PlatformVersion
                The parsed version
        """
        if isinstance(version, PlatformVersion):
            return version
        if not isinstance(version, str):
            raise ValueError(f"Invalid platform version: {version!r}")
        match = _VERSION_EXPR.match(version.strip())
        if not match:
            raise ValueError(f"Invalid platform version: {version!r}")
        major, minor, patch = match.groups()
        parsed = cls(int(major), int(minor or 0), int(patch or 0))
        log.debug4("Parsed [%s] -> %s", version, parsed)
        return parsed

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def git_version(self) -> str:
        """The version in the v-prefixed form reported by the platform"""
        return f"v{self}"


# The lowest possible version. Used as the threshold of legacy schema variants.
MINIMUM_VERSION = PlatformVersion(0, 0, 0)
