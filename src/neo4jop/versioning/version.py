"""Parsing and classification of Neo4j image tags.

Neo4j ships two versioning schemes. Legacy releases use a dotted triple
(``5.26.0``) and calendar releases use the release year as major
(``2025.01.0``). The scheme is decided by the major number alone.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from neo4jop.exceptions import InvalidVersionFormat, UnsupportedVersion

CALENDAR_MIN_MAJOR = 2025
LEGACY_MIN_MAJOR = 4
LEGACY_MAX_MAJOR = 10

# Oldest legacy line that may run in, or upgrade into, a managed cluster
MIN_SUPPORTED_LEGACY = (5, 26)


class Epoch(str, Enum):
    LEGACY = "Legacy"
    CALENDAR = "Calendar"


@dataclass(frozen=True)
class VersionTriple:
    """A classified version; ordering is only meaningful within one epoch."""

    major: int
    minor: int
    patch: int
    epoch: Epoch

    def key(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def is_legacy(self) -> bool:
        return self.epoch == Epoch.LEGACY

    @property
    def is_calendar(self) -> bool:
        return self.epoch == Epoch.CALENDAR

    @property
    def is_supported(self) -> bool:
        """Calendar releases, or legacy 5.26 and later within the 5.x line."""
        if self.is_calendar:
            return True
        return (
            self.major == MIN_SUPPORTED_LEGACY[0]
            and self.minor >= MIN_SUPPORTED_LEGACY[1]
        )

    def __str__(self):
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_components(tag: str) -> Tuple[int, int, int]:
    """Split a tag into (major, minor, patch) without classifying it.

    A leading ``v`` is dropped and everything from the first ``-`` is ignored,
    so ``v5.26.0-enterprise`` yields ``(5, 26, 0)``.
    """
    if tag is None:
        raise InvalidVersionFormat("invalid version format: empty tag")

    raw = tag.strip()
    if raw.startswith("v"):
        raw = raw[1:]
    raw = raw.split("-", 1)[0]

    parts = raw.split(".")
    if len(parts) < 2:
        raise InvalidVersionFormat(f"invalid version format: {tag}")

    numbers = []
    for part in parts[:3]:
        if not (part.isascii() and part.isdigit()):
            raise InvalidVersionFormat(f"invalid version format: {tag}")
        numbers.append(int(part))

    if len(numbers) == 2:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


def classify(major: int) -> Optional[Epoch]:
    """Return the epoch for a major number, or None when it matches neither scheme."""
    if major >= CALENDAR_MIN_MAJOR:
        return Epoch.CALENDAR
    if LEGACY_MIN_MAJOR <= major <= LEGACY_MAX_MAJOR:
        return Epoch.LEGACY
    return None


def parse_version(tag: str) -> VersionTriple:
    """Parse and classify a tag.

    Raises:
        InvalidVersionFormat: the tag has fewer than two numeric components
        UnsupportedVersion: the major number belongs to no known epoch
    """
    major, minor, patch = parse_components(tag)
    epoch = classify(major)
    if epoch is None:
        raise UnsupportedVersion(f"unsupported version {tag}: unknown versioning scheme")
    return VersionTriple(major=major, minor=minor, patch=patch, epoch=epoch)


def versions_match(actual: Optional[str], expected: str) -> bool:
    """True when a reported server version is the release a tag names.

    ``5.26`` matches ``5.26.0`` and ``5.26.0-enterprise``. Values that do not
    parse only match when they are equal after trimming.
    """
    if actual is None:
        return False
    actual = actual.strip().strip("\"'")
    expected = expected.strip().strip("\"'")
    if actual == expected:
        return True
    try:
        return parse_components(actual) == parse_components(expected)
    except InvalidVersionFormat:
        return False
