"""Constants for redis-setlock."""

import signal

DEFAULT_REDIS = "127.0.0.1:6379"
DEFAULT_EXPIRES = 86400  # 1 day

# Exit status for every failure of the tool itself
EXIT_CODE_ERROR = 111
EXIT_CODE_USAGE = 2

# Lock acquisition polling (seconds)
RETRY_INTERVAL = 0.5
RETRY_JITTER = 0.1

# Per-dial socket timeout while connecting (seconds)
DIAL_TIMEOUT = 5.0

# Oldest Redis release with SET ... EX ... NX
MINIMUM_SERVER_VERSION = (2, 6, 12)

# Signals forwarded to the guarded command
TRAP_SIGNALS = (
    signal.SIGHUP,
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGQUIT,
)

# Stdio relay chunk size (bytes)
CHUNK_SIZE = 4096

# How long to keep draining child output after it exits (seconds)
DRAIN_TIMEOUT = 5.0

CONFIG_ENV_VAR = "REDIS_SETLOCK_CONFIG"

# How long to wait for the stdin relay to stop once the command exits (seconds)
STDIN_STOP_TIMEOUT = 0.5
