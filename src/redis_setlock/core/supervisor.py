"""Supervision of the guarded command.

Runs exactly one child process, relays its three standard streams while it
runs, and races its completion against termination signals delivered to us.
A received signal is forwarded to the child; we still wait for the child to
exit before returning, so the caller never releases the lock while the
command is alive.

The stream relays are daemon threads copying between raw file descriptors,
so a stalled reader of our stdout never blocks the event loop that waits on
the child and on signals. Signals arrive through an ``asyncio.Queue`` handed
to the supervisor, filled by ``trap_signals`` in production and by tests
directly.
"""

import asyncio
import contextlib
import logging
import os
import signal
import subprocess
import sys
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import BinaryIO, TextIO

from ..constants import (
    CHUNK_SIZE,
    DRAIN_TIMEOUT,
    EXIT_CODE_ERROR,
    STDIN_STOP_TIMEOUT,
    TRAP_SIGNALS,
)

logger = logging.getLogger(__name__)

Pipe = tuple[int, int]


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


@contextlib.contextmanager
def trap_signals(
    channel: "asyncio.Queue[int]",
    signals: Sequence[int] = TRAP_SIGNALS,
) -> Iterator["asyncio.Queue[int]"]:
    """Deliver ``signals`` to ``channel`` instead of their default action.

    Must be entered from a coroutine running in the main thread. Handlers are
    removed on exit.
    """
    loop = asyncio.get_running_loop()
    for signum in signals:
        loop.add_signal_handler(signum, channel.put_nowait, signum)
    try:
        yield channel
    finally:
        for signum in signals:
            loop.remove_signal_handler(signum)


def _parent_stream(stream: TextIO | None, name: str) -> BinaryIO | None:
    """Binary side of one of our standard streams, None if it is closed."""
    if stream is None:
        logger.debug(f"Our {name} is closed")
        return None
    return stream.buffer


def _open_pipe(name: str) -> Pipe | None:
    try:
        return os.pipe()
    except OSError as e:
        logger.error(f"Failed to open {name} pipe: {e}")
        return None


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]


def _chunk_reader(source: BinaryIO) -> Callable[[], bytes]:
    # Raw fd reads keep relay threads off the interpreter's stdio buffer locks
    try:
        fd = source.fileno()
    except (OSError, ValueError):
        read = getattr(source, "read1", source.read)
        return lambda: read(CHUNK_SIZE)
    return lambda: os.read(fd, CHUNK_SIZE)


def _chunk_writer(sink: BinaryIO) -> Callable[[bytes], None]:
    try:
        fd = sink.fileno()
        sink.flush()
    except (OSError, ValueError):

        def write(chunk: bytes) -> None:
            sink.write(chunk)
            sink.flush()

        return write
    return lambda chunk: _write_all(fd, chunk)


def _relay_stdin(source: BinaryIO, write_fd: int, stop: threading.Event) -> None:
    """Copy ``source`` into the child's stdin pipe until EOF or ``stop``."""
    read_chunk = _chunk_reader(source)
    try:
        while not stop.is_set() and (chunk := read_chunk()):
            _write_all(write_fd, chunk)
    except BrokenPipeError:
        logger.debug("Command closed its stdin")
    except (OSError, ValueError) as e:
        if stop.is_set():
            logger.debug(f"stdin relay stopped: {e}")
        else:
            logger.error(f"stdin relay failed: {e}")
    finally:
        os.close(write_fd)


def _relay_output(
    read_fd: int,
    sink: BinaryIO | None,
    name: str,
    done: Callable[[], None],
) -> None:
    """Copy a child output pipe to ``sink`` until the child closes it.

    Without a usable sink the pipe is still drained, so the child never
    blocks on a full pipe.
    """
    write = _chunk_writer(sink) if sink is not None else None
    try:
        while chunk := os.read(read_fd, CHUNK_SIZE):
            if write is None:
                continue
            try:
                write(chunk)
            except (OSError, ValueError) as e:
                logger.error(f"{name} relay failed: {e}")
                write = None
    except OSError as e:
        logger.error(f"{name} relay failed: {e}")
    finally:
        os.close(read_fd)
        done()


def _completion(loop: asyncio.AbstractEventLoop) -> tuple["asyncio.Future[None]", Callable]:
    """A future on ``loop`` plus a callback any thread may use to finish it."""
    future: asyncio.Future[None] = loop.create_future()

    def finish() -> None:
        if not future.done():
            future.set_result(None)

    def notify() -> None:
        with contextlib.suppress(RuntimeError):  # loop already closed
            loop.call_soon_threadsafe(finish)

    return future, notify


def _start(target: Callable, *args: object, name: str) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, name=name, daemon=True)
    thread.start()
    return thread


class ProcessSupervisor:
    """Run one command and translate its outcome into an exit code.

    Args:
        signals: Channel of received signal numbers
        stdin: Parent input relayed to the child (default: sys.stdin)
        stdout: Destination of the child's stdout (default: sys.stdout)
        stderr: Destination of the child's stderr (default: sys.stderr)
    """

    def __init__(
        self,
        signals: "asyncio.Queue[int]",
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> None:
        self.signals = signals
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr

    async def run(self, command: Sequence[str]) -> int:
        """Run ``command`` to completion.

        A closed parent stdin gives the child /dev/null; output for a closed
        parent stdout or stderr is discarded.

        Returns:
            The child's exit status; the number of the first signal we
            received if one arrived while it ran; the child's negative
            ``returncode`` if a signal we did not forward killed it; or
            EXIT_CODE_ERROR if it could not be started.
        """
        stdin = self._stdin if self._stdin is not None else _parent_stream(sys.stdin, "stdin")
        stdout = self._stdout if self._stdout is not None else _parent_stream(sys.stdout, "stdout")
        stderr = self._stderr if self._stderr is not None else _parent_stream(sys.stderr, "stderr")

        in_pipe = _open_pipe("stdin") if stdin is not None else None
        out_pipe = _open_pipe("stdout")
        err_pipe = _open_pipe("stderr")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=in_pipe[0] if in_pipe else subprocess.DEVNULL,
                stdout=out_pipe[1] if out_pipe else None,
                stderr=err_pipe[1] if err_pipe else None,
            )
        except OSError as e:
            logger.error(f"Failed to start {command[0]!r}: {e}")
            for fd in (in_pipe and in_pipe[1], out_pipe and out_pipe[0], err_pipe and err_pipe[0]):
                if fd is not None:
                    os.close(fd)
            return EXIT_CODE_ERROR
        finally:
            for fd in (in_pipe and in_pipe[0], out_pipe and out_pipe[1], err_pipe and err_pipe[1]):
                if fd is not None:
                    os.close(fd)
        logger.debug(f"Started {command[0]!r} with PID {process.pid}")

        stop = threading.Event()
        stdin_relay = None
        if in_pipe is not None:
            stdin_relay = _start(_relay_stdin, stdin, in_pipe[1], stop, name="setlock-stdin")

        loop = asyncio.get_running_loop()
        relays = []
        for pipe, sink, name in ((out_pipe, stdout, "stdout"), (err_pipe, stderr, "stderr")):
            if pipe is None:
                continue
            done, notify = _completion(loop)
            _start(_relay_output, pipe[0], sink, name, notify, name=f"setlock-{name}")
            relays.append(done)

        received = await self._wait(process)

        stop.set()
        if stdin_relay is not None:
            await asyncio.to_thread(stdin_relay.join, STDIN_STOP_TIMEOUT)

        if relays:
            _, pending = await asyncio.wait(relays, timeout=DRAIN_TIMEOUT)
            if pending:
                logger.warning("Command output is still open after exit, not waiting for it")

        if received is not None:
            return received
        return self._exit_code(process.returncode)

    async def _wait(self, process: asyncio.subprocess.Process) -> int | None:
        """Wait for the child, forwarding signals; return the first signal seen."""
        completion = asyncio.ensure_future(process.wait())
        received: int | None = None
        while not completion.done():
            signal_wait = asyncio.ensure_future(self.signals.get())
            done, _ = await asyncio.wait(
                {completion, signal_wait}, return_when=asyncio.FIRST_COMPLETED
            )
            if signal_wait not in done:
                signal_wait.cancel()
                continue
            signum = signal_wait.result()
            logger.info(f"Got signal: {signal_name(signum)}({signum})")
            if received is None:
                received = signum
            with contextlib.suppress(ProcessLookupError):
                process.send_signal(signum)
        return received

    @staticmethod
    def _exit_code(returncode: int | None) -> int:
        if returncode is None:
            logger.error("Could not determine the command's exit status")
            return EXIT_CODE_ERROR
        if returncode < 0:
            logger.debug(f"Command was killed by {signal_name(-returncode)}")
        return returncode


async def supervise(command: Sequence[str]) -> int:
    """Run ``command`` with termination signals trapped and forwarded."""
    signals: asyncio.Queue[int] = asyncio.Queue()
    with trap_signals(signals):
        return await ProcessSupervisor(signals).run(command)
