"""Redis server version model."""

import re

from pydantic import BaseModel, ConfigDict, Field

from ..constants import MINIMUM_SERVER_VERSION

VERSION_PATTERN = re.compile(r"^\s*(\d+)\.(\d+)\.(\d+)")


class ServerVersion(BaseModel):
    """A ``major.minor.patch`` server version, ordered numerically."""

    model_config = ConfigDict(frozen=True)

    major: int = Field(ge=0)
    minor: int = Field(ge=0)
    patch: int = Field(ge=0)

    @classmethod
    def parse(cls, text: str) -> "ServerVersion":
        """Parse the leading ``x.y.z`` of a version string.

        Raises:
            ValueError: If the text does not start with three dot-separated numbers
        """
        match = VERSION_PATTERN.match(text)
        if match is None:
            raise ValueError(f"not a major.minor.patch version: {text!r}")
        major, minor, patch = (int(part) for part in match.groups())
        return cls(major=major, minor=minor, patch=patch)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "ServerVersion") -> bool:
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: "ServerVersion") -> bool:
        return self.as_tuple() <= other.as_tuple()

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


MINIMUM_VERSION = ServerVersion(
    major=MINIMUM_SERVER_VERSION[0],
    minor=MINIMUM_SERVER_VERSION[1],
    patch=MINIMUM_SERVER_VERSION[2],
)
