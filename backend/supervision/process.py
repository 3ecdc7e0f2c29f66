"""
LiveCoord Process Supervisor.

Launches the native watcher/server, follows its status output and
terminates it on shutdown.
Requires Python 3.11+.
"""

import asyncio
import inspect
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from protocol.messages import Listening, ServerOutputMessage, parse_output_message
from utils.logger import LoggerMixin

# Longest status line accepted from the subprocess
LINE_LIMIT = 1024 * 1024


class ProcessSupervisor(LoggerMixin):
    """
    Owns one subprocess for the lifetime of the coordinator.

    Standard output is read as newline-delimited JSON status messages;
    a line that does not parse is logged and skipped. Standard error is
    logged verbatim. The process is never restarted: when it exits the
    return code is recorded and that is all.
    """

    def __init__(
        self,
        command: Sequence[str],
        on_message: Callable[[ServerOutputMessage], Any] | None = None,
        on_listening: Callable[[str], Any] | None = None,
        terminate_timeout: float = 5.0,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            command: Program and arguments to launch
            on_message: Called with every parsed status message
            on_listening: Called with the bind address once the server listens
            terminate_timeout: Seconds to wait after SIGTERM before SIGKILL
            cwd: Working directory for the subprocess
            env: Environment for the subprocess (inherits ours when None)
        """
        if not command:
            raise ValueError("command must not be empty")

        self._command = list(command)
        self._on_message = on_message
        self._on_listening = on_listening
        self._terminate_timeout = terminate_timeout
        self._cwd = cwd
        self._env = env

        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task[None]] = []
        self._handlers: set[asyncio.Task[Any]] = set()
        self._exited = asyncio.Event()
        self._bind_address: str | None = None
        self._returncode: int | None = None

    async def start(self) -> None:
        """Launch the subprocess and start following its output."""
        if self._process is not None:
            raise RuntimeError("supervisor already started")

        self._process = await asyncio.create_subprocess_exec(
            *self._command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._cwd,
            env=self._env,
            limit=LINE_LIMIT,
        )
        self.log.info("process_started", command=self._command, pid=self._process.pid)

        self._readers = [
            asyncio.create_task(self._read_stdout(), name="supervisor-stdout"),
            asyncio.create_task(self._read_stderr(), name="supervisor-stderr"),
            asyncio.create_task(self._watch_exit(), name="supervisor-exit"),
        ]

    async def _read_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stream = self._process.stdout
        while True:
            try:
                line = await stream.readline()
            except ValueError as e:
                # Line longer than LINE_LIMIT; the reader has skipped past it
                self.log.warning("output_line_too_long", error=str(e))
                continue
            if not line:
                break
            self.handle_line(line)

    async def _read_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stream = self._process.stderr
        while True:
            try:
                line = await stream.readline()
            except ValueError as e:
                self.log.warning("stderr_line_too_long", error=str(e))
                continue
            if not line:
                break
            self.log.info("process_stderr", line=line.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _watch_exit(self) -> None:
        assert self._process is not None
        self._returncode = await self._process.wait()
        self._exited.set()
        self.log.info("process_exited", pid=self._process.pid, returncode=self._returncode)

    def handle_line(self, line: bytes | str) -> ServerOutputMessage | None:
        """
        Parse and dispatch one status line.

        Returns:
            The parsed message, or None for blank or malformed lines
        """
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        text = line.strip()
        if not text:
            return None

        try:
            message = parse_output_message(text)
        except ValidationError as e:
            self.log.warning("output_parse_failed", line=text, error=str(e))
            return None

        if isinstance(message, Listening):
            self._bind_address = message.bind_address
            self.log.info("server_listening", bind_address=message.bind_address)
            if self._on_listening is not None:
                self._invoke(self._on_listening, message.bind_address)

        if self._on_message is not None:
            self._invoke(self._on_message, message)

        return message

    def _invoke(self, handler: Callable[..., Any], *args: Any) -> None:
        """Run a handler without letting it hold up the read loop."""
        try:
            result = handler(*args)
        except Exception as e:
            self.log.error("output_handler_failed", error=str(e))
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handlers.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task[Any]) -> None:
        self._handlers.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.error("output_handler_failed", error=str(task.exception()))

    async def wait(self) -> int:
        """Wait for the subprocess to exit and return its exit code."""
        if self._process is None:
            raise RuntimeError("supervisor not started")
        await self._exited.wait()
        assert self._returncode is not None
        return self._returncode

    async def stop(self) -> int | None:
        """
        Terminate the subprocess and stop following it.

        Sends SIGTERM, then SIGKILL if the process is still alive after
        the terminate timeout. Safe to call more than once.

        Returns:
            The exit code, or None if the process was never started
        """
        if self._process is None:
            return None

        if self._process.returncode is None:
            self.log.info("process_terminating", pid=self._process.pid)
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=self._terminate_timeout)
            except asyncio.TimeoutError:
                self.log.warning("process_kill", pid=self._process.pid)
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
                await self._process.wait()

        if self._readers:
            await asyncio.gather(*self._readers, return_exceptions=True)
            self._readers = []

        for task in list(self._handlers):
            task.cancel()

        self._returncode = self._process.returncode
        return self._returncode

    @property
    def bind_address(self) -> str | None:
        """Address the server reported it is listening on."""
        return self._bind_address

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def __aenter__(self) -> "ProcessSupervisor":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
