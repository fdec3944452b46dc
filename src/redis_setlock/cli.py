"""redis-setlock CLI: run a command while holding a lock in Redis."""

from pathlib import Path

import typer

from redis_setlock import __version__

from .config import build_options, load_config, parse_address
from .constants import CONFIG_ENV_VAR, DEFAULT_EXPIRES, DEFAULT_REDIS, EXIT_CODE_ERROR
from .core import run_with_lock
from .errors import ConfigError
from .logging import configure_logging


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"redis-setlock {__version__}")
        raise typer.Exit()


def _validate_redis(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        parse_address(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from None
    return value


app = typer.Typer(
    name="redis-setlock",
    help="Run PROGRAM while holding the lock KEY in Redis.",
    add_completion=False,
    no_args_is_help=True,
)


@app.command(
    context_settings={
        # Everything after KEY belongs to PROGRAM
        "allow_interspersed_args": False,
        "ignore_unknown_options": True,
    },
)
def setlock(
    key: str = typer.Argument(..., help="Lock key shared by cooperating processes"),
    command: list[str] = typer.Argument(
        ...,
        metavar="PROGRAM [ARG]...",
        help="Command to run while holding the lock",
    ),
    redis: str | None = typer.Option(
        None,
        "--redis",
        callback=_validate_redis,
        help=f"Redis server host:port [default: {DEFAULT_REDIS}]",
    ),
    expires: int | None = typer.Option(
        None,
        "--expires",
        min=1,
        help=(
            "Lock TTL in seconds; the lock is auto-released after this time. "
            f"Also bounds how long to wait for Redis [default: {DEFAULT_EXPIRES}]"
        ),
    ),
    keep: bool = typer.Option(
        False,
        "--keep",
        help="Keep the lock after the command exits",
    ),
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        "-N/-n",
        help="Wait until KEY can be locked (-N, default) or give up at once (-n)",
    ),
    exit_nonzero: bool = typer.Option(
        True,
        "--exit-error/--exit-zero",
        "-X/-x",
        help=f"If KEY is locked, exit {EXIT_CODE_ERROR} (-X, default) or exit zero (-x)",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar=CONFIG_ENV_VAR,
        help="TOML file with a [setlock] table of defaults",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only report warnings and errors",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Run PROGRAM while holding the lock KEY in Redis."""
    configure_logging(verbosity=verbose, quiet=quiet, no_color=no_color)

    try:
        file_config = load_config(config)
    except ConfigError as e:
        raise typer.BadParameter(str(e), param_hint="--config") from None

    options = build_options(
        file_config,
        redis=redis,
        expires=expires,
        keep=keep,
        wait=wait,
        exit_nonzero=exit_nonzero,
    )
    raise typer.Exit(run_with_lock(options, key, command))


def main() -> None:
    """Console script entry point."""
    app()
