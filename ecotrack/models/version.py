"""Semantic version parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
SEMVER_PATTERN = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


class VersionParseError(ValueError):
    """Raised when a string is not a strict semantic version."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Not a valid semantic version: {text!r}")
        self.text = text


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """A semantic version (major.minor.patch[-pre][+build])."""

    major: int
    minor: int
    patch: int
    pre: Optional[str] = None
    build: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SemVer":
        """
        Parse strictly; no leading 'v', no missing components.

        Raises:
            VersionParseError: If text is not a semantic version
        """
        match = SEMVER_PATTERN.match(text)
        if match is None:
            raise VersionParseError(text)
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            pre=match.group("pre"),
            build=match.group("build"),
        )

    @classmethod
    def parse_tag(cls, tag: str, marker: str = "v") -> "SemVer":
        """Strip one leading tag marker (``v0.13.1``) and parse strictly."""
        if tag.startswith(marker):
            tag = tag[len(marker):]
        return cls.parse(tag)

    @property
    def is_unstable(self) -> bool:
        """Major version 0: minor bumps may break compatibility."""
        return self.major == 0

    def _sort_key(self) -> tuple:
        # A release sorts after any of its pre-releases; build metadata is ignored
        if self.pre is None:
            pre_key: tuple = (1,)
        else:
            pre_key = (0, tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in self.pre.split(".")
            ))
        return (self.major, self.minor, self.patch, pre_key)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += f"-{self.pre}"
        if self.build:
            text += f"+{self.build}"
        return text
