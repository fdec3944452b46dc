"""Configuration management for redis-setlock."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import DEFAULT_EXPIRES, DEFAULT_REDIS, EXIT_CODE_ERROR
from .errors import ConfigError


def parse_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` address.

    IPv6 hosts may be given in brackets (``[::1]:6379``).

    Raises:
        ValueError: If the address has no host or no valid port
    """
    host, sep, port_text = address.rpartition(":")
    if not sep or not host or not port_text:
        raise ValueError(f"expected host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in {address!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in {address!r}")
    return host, port


class Options(BaseModel):
    """Options for one lock-and-run invocation.

    Attributes:
        redis: Redis server address as host:port.
        expires: Lock TTL in seconds; also the connect ceiling when waiting.
        keep: Leave the lock in place after the command exits.
        wait: Poll until the lock is free instead of giving up.
        contention_exit_code: Exit status when the lock is held and we gave up.
    """

    model_config = ConfigDict(frozen=True)

    redis: str = Field(default=DEFAULT_REDIS, description="Redis server host:port")
    expires: int = Field(default=DEFAULT_EXPIRES, gt=0, description="Lock TTL in seconds")
    keep: bool = False
    wait: bool = True
    contention_exit_code: int = Field(default=EXIT_CODE_ERROR, ge=0, le=255)

    @field_validator("redis")
    @classmethod
    def _validate_redis(cls, value: str) -> str:
        parse_address(value)
        return value

    @property
    def host(self) -> str:
        return parse_address(self.redis)[0]

    @property
    def port(self) -> int:
        return parse_address(self.redis)[1]

    @property
    def connect_timeout(self) -> int:
        """Seconds to keep retrying the connection (0 = single attempt)."""
        return self.expires if self.wait else 0


class FileConfig(BaseModel):
    """Defaults read from the ``[setlock]`` table of a config file."""

    model_config = ConfigDict(extra="forbid")

    redis: str | None = None
    expires: int | None = Field(default=None, gt=0)

    @field_validator("redis")
    @classmethod
    def _validate_redis(cls, value: str | None) -> str | None:
        if value is not None:
            parse_address(value)
        return value


def load_config(config_path: Path | None) -> FileConfig:
    """Load defaults from a TOML config file.

    Args:
        config_path: Path to the file, or None for no file

    Returns:
        Loaded defaults, empty if no path was given

    Raises:
        ConfigError: If the file is missing, not TOML, or has unknown keys
    """
    if config_path is None:
        return FileConfig()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e.strerror}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    try:
        return FileConfig.model_validate(data.get("setlock", {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {config_path}: {e}") from e


def build_options(
    file_config: FileConfig,
    redis: str | None = None,
    expires: int | None = None,
    keep: bool = False,
    wait: bool = True,
    exit_nonzero: bool = True,
) -> Options:
    """Merge command-line values over config-file defaults.

    Precedence is flag > config file > built-in default.
    """
    return Options(
        redis=redis or file_config.redis or DEFAULT_REDIS,
        expires=expires if expires is not None else (file_config.expires or DEFAULT_EXPIRES),
        keep=keep,
        wait=wait,
        contention_exit_code=EXIT_CODE_ERROR if exit_nonzero else 0,
    )
