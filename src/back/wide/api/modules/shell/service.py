"""Shell bridge: one pty-backed shell process per terminal connection.

Terminal I/O never blocks the event loop. The pty master is non-blocking and
registered with the loop's selector, so a silent shell holds no thread and a
shell that stops reading its input holds up only its own session.
"""
import asyncio
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import ptyprocess
import structlog
from starlette.websockets import WebSocket, WebSocketState

from ....observability.logging import get_logger
from ...config import APIConfig

logger = get_logger(__name__)

# Seconds close_all() waits for sessions to tear themselves down.
SHUTDOWN_GRACE = 5.0

# Output chunks queued for the connection before the pty stops being read.
OUTPUT_QUEUE_CHUNKS = 64

# Input bytes the terminal has not accepted yet; past this the session ends.
INPUT_BUFFER_LIMIT = 1024 * 1024


class SessionLimitReached(RuntimeError):
    """Raised when the bridge already runs the configured number of shells."""


@dataclass
class PTYProcess:
    """Wrapper around ptyprocess for a byte-mode pseudo-terminal.

    ``read`` and ``write`` never block: the master fd is switched to
    non-blocking mode on spawn and callers wait for readiness on ``fd``.
    """

    process: Any = None

    def spawn(self, command: list[str], cwd: Path, env: dict[str, str]):
        """Start the process.

        Args:
            command: Command and arguments to run
            cwd: Working directory
            env: Full environment for the child
        """
        self.process = ptyprocess.PtyProcess.spawn(
            command,
            cwd=str(cwd),
            env=env,
            dimensions=(24, 80),
        )
        os.set_blocking(self.process.fd, False)

    @property
    def fd(self) -> Optional[int]:
        """Master side of the terminal, or None once closed."""
        if self.process is None or self.process.closed:
            return None
        return self.process.fd

    def read(self, size: int) -> bytes:
        """Read whatever output is pending, at most ``size`` bytes.

        Raises:
            BlockingIOError: Nothing to read right now
            EOFError: The child side of the terminal is gone
        """
        fd = self.fd
        if fd is None:
            raise EOFError('process not running')
        try:
            data = os.read(fd, size)
        except BlockingIOError:
            raise
        except OSError as e:
            # Linux reports a hung-up terminal as EIO
            raise EOFError(str(e)) from e
        if not data:
            raise EOFError('end of output')
        return data

    def write(self, data: bytes) -> int:
        """Write as much of ``data`` as the terminal accepts; return the count."""
        fd = self.fd
        if fd is None:
            # nobody left to deliver to
            return len(data)
        try:
            return os.write(fd, data)
        except BlockingIOError:
            return 0

    def kill(self):
        """Terminate the process, escalating to SIGKILL, and release the terminal."""
        if self.process is None or self.process.closed:
            return
        try:
            alive = self.process.isalive()
        except ptyprocess.PtyProcessError:
            # already reaped by a concurrent kill()
            alive = False
        if alive:
            self.process.terminate(force=True)
        self.process.close(force=True)

    def isalive(self) -> bool:
        return self.process is not None and self.process.isalive()

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def exit_code(self) -> Optional[int]:
        """Get exit code if process has terminated."""
        if self.process is None:
            return None
        try:
            alive = self.process.isalive()
        except ptyprocess.PtyProcessError:
            # already reaped by a concurrent kill()
            alive = False
        return None if alive else self.process.exitstatus


@dataclass
class ShellSession:
    """A terminal connection paired 1:1 with a shell process.

    The loop's selector moves bytes between the pty and two buffers: output
    chunks queued for the connection and input not yet accepted by the
    terminal. Two pumps connect those buffers to the websocket. Whichever
    side ends first sets the shared stop event; teardown then detaches the
    pty from the loop, kills the process and closes the connection.
    """

    connection_id: str
    root_folder: Path
    websocket: WebSocket
    process: PTYProcess
    read_size: int = 4096
    input_buffer_limit: int = INPUT_BUFFER_LIMIT
    close_reason: Optional[str] = None
    _stop: asyncio.Event = field(default_factory=asyncio.Event)
    _done: asyncio.Event = field(default_factory=asyncio.Event)
    _output: asyncio.Queue = field(default_factory=asyncio.Queue)
    _pending: bytearray = field(default_factory=bytearray)
    _loop: Optional[asyncio.AbstractEventLoop] = None
    _fd: Optional[int] = None
    _reading: bool = False
    _writing: bool = False
    _eof: bool = False

    def stop(self, reason: str):
        """Request teardown. The first reason wins."""
        if self.close_reason is None:
            self.close_reason = reason
        self._stop.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def pending_input(self) -> int:
        """Input bytes waiting for the terminal to accept them."""
        return len(self._pending)

    async def wait_closed(self):
        await self._done.wait()

    async def run(self):
        """Relay bytes in both directions until either side closes."""
        self._loop = asyncio.get_running_loop()
        self._fd = self.process.fd
        if self._fd is None:
            self.stop('process_exited')
        else:
            self._resume_reading()
        pumps = [
            asyncio.create_task(self._pump_output()),
            asyncio.create_task(self._pump_input()),
        ]
        try:
            await self._stop.wait()
        finally:
            for task in pumps:
                task.cancel()
            # before kill() closes the fd
            self._detach()
            try:
                await self._teardown()
                await asyncio.gather(*pumps, return_exceptions=True)
            finally:
                self._done.set()

    def _resume_reading(self):
        if not self._reading and not self._eof and not self._stop.is_set():
            self._loop.add_reader(self._fd, self._on_readable)
            self._reading = True

    def _pause_reading(self):
        if self._reading:
            self._loop.remove_reader(self._fd)
            self._reading = False

    def _set_writing(self, enabled: bool):
        if enabled and not self._writing and not self._stop.is_set():
            self._loop.add_writer(self._fd, self._flush_input)
            self._writing = True
        elif not enabled and self._writing:
            self._loop.remove_writer(self._fd)
            self._writing = False

    def _detach(self):
        self._pause_reading()
        self._set_writing(False)

    def _on_readable(self):
        try:
            data = self.process.read(self.read_size)
        except BlockingIOError:
            return
        except EOFError:
            self._eof = True
            self._pause_reading()
            self._output.put_nowait(None)
            return
        self._output.put_nowait(data)
        if self._output.qsize() >= OUTPUT_QUEUE_CHUNKS:
            # slow connection: let the kernel buffer fill up instead
            self._pause_reading()

    def _flush_input(self):
        try:
            while self._pending:
                written = self.process.write(self._pending)
                if not written:
                    break
                del self._pending[:written]
        except OSError as exc:
            self._pending.clear()
            self._set_writing(False)
            logger.warning('shell_input_failed', error=str(exc))
            self.stop('input_error')
            return
        self._set_writing(bool(self._pending))

    async def _pump_output(self):
        reason = 'process_exited'
        try:
            while True:
                data = await self._output.get()
                if data is None:
                    break
                await self.websocket.send_bytes(data)
                if self._output.qsize() < OUTPUT_QUEUE_CHUNKS // 2:
                    self._resume_reading()
        except Exception as exc:
            reason = 'output_error'
            logger.warning('shell_output_failed', error=str(exc))
        finally:
            self.stop(reason)

    async def _pump_input(self):
        reason = 'connection_closed'
        try:
            while True:
                message = await self.websocket.receive()
                if message['type'] == 'websocket.disconnect':
                    break
                data = message.get('bytes')
                if data is None:
                    data = (message.get('text') or '').encode('utf-8')
                if not data:
                    continue
                if len(self._pending) + len(data) > self.input_buffer_limit:
                    reason = 'input_overflow'
                    logger.warning('shell_input_overflow', pending=len(self._pending))
                    break
                self._pending += data
                self._flush_input()
        except Exception as exc:
            reason = 'input_error'
            logger.warning('shell_input_failed', error=str(exc))
        finally:
            self.stop(reason)

    async def _teardown(self):
        loop = asyncio.get_running_loop()
        # terminate(force=True) sleeps between signals. Shielded: the kill
        # completes even when the handler task is cancelled.
        await asyncio.shield(loop.run_in_executor(None, self.process.kill))
        if (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=1000)
            except RuntimeError:
                # connection went away while closing
                pass


class ShellBridge:
    """Spawns and tracks shell sessions.

    Handles the session table, the session cap and shutdown cleanup.
    """

    def __init__(self, config: APIConfig):
        self.config = config
        self._sessions: dict[str, ShellSession] = {}
        self._lock = asyncio.Lock()

    @property
    def sessions(self) -> dict[str, ShellSession]:
        """Snapshot of live sessions by connection id."""
        return dict(self._sessions)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def spawn_process(self, root_folder: Path) -> PTYProcess:
        """Start the configured shell in ``root_folder`` with the service environment."""
        env = os.environ.copy()
        env['TERM'] = self.config.shell_term
        process = PTYProcess()
        process.spawn(list(self.config.shell_command), cwd=root_folder, env=env)
        return process

    async def open_session(self, websocket: WebSocket, root_folder: Path) -> ShellSession:
        """Spawn a shell for an accepted connection and register the session.

        Raises:
            SessionLimitReached: If the session cap is reached
            Exception: Whatever the spawn raised (missing binary, bad cwd, ...)
        """
        async with self._lock:
            if len(self._sessions) >= self.config.shell_max_sessions:
                raise SessionLimitReached('Maximum sessions reached')
            loop = asyncio.get_running_loop()
            process = await loop.run_in_executor(None, self.spawn_process, root_folder)
            session = ShellSession(
                connection_id=str(uuid.uuid4()),
                root_folder=root_folder,
                websocket=websocket,
                process=process,
                read_size=self.config.shell_read_size,
            )
            self._sessions[session.connection_id] = session

        logger.info(
            'shell_session_started',
            connection_id=session.connection_id,
            pid=process.pid,
            cwd=str(root_folder),
        )
        return session

    async def run_session(self, session: ShellSession):
        """Run a registered session to completion and drop it from the table."""
        # pump tasks inherit the binding
        with structlog.contextvars.bound_contextvars(connection_id=session.connection_id):
            try:
                await session.run()
            finally:
                self._sessions.pop(session.connection_id, None)
                logger.info(
                    'shell_session_closed',
                    reason=session.close_reason,
                    exit_code=session.process.exit_code,
                )

    async def close_all(self, timeout: float = SHUTDOWN_GRACE):
        """Stop every live session; kill stragglers that do not finish in time."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.stop('server_shutdown')
        if not sessions:
            return
        try:
            await asyncio.wait_for(
                asyncio.gather(*(s.wait_closed() for s in sessions)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            loop = asyncio.get_running_loop()
            for session in sessions:
                if not session.done:
                    await loop.run_in_executor(None, session.process.kill)
