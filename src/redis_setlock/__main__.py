"""Allow running as ``python -m redis_setlock``."""

from redis_setlock.cli import main

main()
