"""Core business logic for redis-setlock.

This package contains the lock protocol and process supervision,
separated from the CLI framework setup in cli.py:
- lock_manager: acquire/release of the Redis lock
- supervisor: running the guarded command and relaying its streams/signals
- orchestrator: sequencing of the two for one invocation
"""

from .lock_manager import LockCoordinator, create_token, retry_delay
from .orchestrator import run_with_lock
from .supervisor import ProcessSupervisor, supervise, trap_signals

__all__ = [
    "LockCoordinator",
    "ProcessSupervisor",
    "create_token",
    "retry_delay",
    "run_with_lock",
    "supervise",
    "trap_signals",
]
