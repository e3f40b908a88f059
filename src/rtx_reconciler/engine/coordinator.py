"""Session lifecycle coordination.

One SessionCoordinator per router serializes every engine call behind a
FIFO lock, opens the session lazily, reconnects once when the transport
fails mid-command, closes idle sessions, and enforces caller deadlines by
tearing the session down.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from ..config.settings import EngineSettings
from ..errors import (
    DeadlineExceeded,
    PrivilegeError,
    SessionError,
)
from ..transport import create_transport
from ..transport.base import DeviceIdentity, Session, Transport
from ..utils.connection import COMMAND_RETRYABLE_EXCEPTIONS, command_retrying
from ..utils.sanitizer import sanitize_command
from .framer import CommandFramer
from .schema import Command, CommandResult

logger = logging.getLogger(__name__)

TransportFactory = Callable[[DeviceIdentity], Transport]


class SessionCoordinator:
    """Owns the one session to one device."""

    def __init__(
        self,
        identity: DeviceIdentity,
        transport_factory: TransportFactory = create_transport,
        settings: Optional[EngineSettings] = None,
    ):
        self.identity = identity
        self.settings = settings or EngineSettings()
        self._transport_factory = transport_factory
        self._lock = asyncio.Lock()
        self._session: Optional[Session] = None
        self._framer: Optional[CommandFramer] = None
        self._expires: Optional[float] = None
        self._watcher: Optional[asyncio.Task] = None
        self.sessions_opened = 0

    @property
    def device_id(self) -> str:
        return self.identity.name

    @property
    def session(self) -> Optional[Session]:
        return self._session

    # --- Locking and deadlines ---

    @asynccontextmanager
    async def locked(self, deadline: Optional[float] = None):
        """Hold the device for one engine call.

        Args:
            deadline: Seconds the whole call may take. When it runs out the
                session is torn down and DeadlineExceeded is raised.
        """
        loop = asyncio.get_running_loop()
        expires = loop.time() + deadline if deadline is not None else None

        if expires is None:
            await self._lock.acquire()
        else:
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=max(deadline, 0))
            except asyncio.TimeoutError:
                raise DeadlineExceeded(
                    f"Deadline passed waiting for {self.device_id}"
                ) from None

        self._expires = expires
        try:
            yield self
        except asyncio.CancelledError:
            # Session state is unknown once a command is interrupted
            await self._teardown("cancelled")
            raise
        finally:
            self._expires = None
            self._lock.release()

    def _remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return self._expires - asyncio.get_running_loop().time()

    async def _check_deadline(self) -> None:
        remaining = self._remaining()
        if remaining is not None and remaining <= 0:
            await self._teardown("deadline")
            raise DeadlineExceeded(f"Deadline passed on {self.device_id}")

    def _budget(self, timeout: float) -> float:
        remaining = self._remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        return timeout

    # --- Session management ---

    async def _ensure_session(self) -> CommandFramer:
        session = self._session
        if session is not None:
            if session.is_open and session.idle_seconds() < self.settings.idle_timeout:
                return self._framer
            await self._teardown("idle" if session.is_open else "closed by device", graceful=session.is_open)

        await self._check_deadline()
        transport = self._transport_factory(self.identity)
        remaining = self._remaining()
        if remaining is None:
            session = await Session.open(self.identity, transport)
        else:
            try:
                session = await asyncio.wait_for(Session.open(self.identity, transport), remaining)
            except asyncio.TimeoutError:
                await transport.close()
                raise DeadlineExceeded(f"Deadline passed connecting to {self.device_id}") from None
        self.sessions_opened += 1

        framer = CommandFramer(session, self.settings.command_timeout)
        try:
            await framer.handshake(self._budget(self.settings.command_timeout))
        except BaseException:
            await session.close()
            raise

        self._session, self._framer = session, framer
        self._start_watcher()
        return framer

    async def _teardown(self, reason: str, graceful: bool = False) -> None:
        session, framer = self._session, self._framer
        self._session = self._framer = None

        watcher, self._watcher = self._watcher, None
        if watcher is not None and watcher is not asyncio.current_task():
            watcher.cancel()

        if session is None:
            return
        logger.info(f"Closing session to {self.device_id} ({reason})")
        if graceful and framer is not None:
            try:
                await framer.logout()
            except (COMMAND_RETRYABLE_EXCEPTIONS + (OSError,)) as e:
                logger.debug(f"Logout from {self.device_id} incomplete: {e}")
        await session.close()

    def _start_watcher(self) -> None:
        if self._watcher is None or self._watcher.done():
            self._watcher = asyncio.get_running_loop().create_task(self._watch_idle())

    async def _watch_idle(self) -> None:
        """Close the session once it has been idle for idle_timeout."""
        while True:
            await asyncio.sleep(self.settings.idle_check_interval)
            session = self._session
            if session is None:
                return
            if session.idle_seconds() < self.settings.idle_timeout or self._lock.locked():
                continue
            async with self._lock:
                if self._session is session and session.idle_seconds() >= self.settings.idle_timeout:
                    await self._teardown("idle", graceful=True)
                    return

    # --- Commands ---

    async def run(self, command: Command, boundary=None) -> CommandResult:
        """Send one command, reconnecting once on transport failure.

        Must be called inside ``locked()``.

        Raises:
            SessionError: the command failed on every attempt; the session is closed
            DeadlineExceeded: the caller's deadline ran out
            PrivilegeError: administrator mode was refused
        """
        attempts = self.settings.command_attempts
        try:
            async for attempt in command_retrying(attempts):
                with attempt:
                    try:
                        await self._check_deadline()
                        framer = await self._ensure_session()
                        timeout = self._budget(command.timeout or self.settings.command_timeout)
                        return await framer.execute(command, timeout, boundary)
                    except COMMAND_RETRYABLE_EXCEPTIONS as e:
                        await self._teardown(type(e).__name__)
                        remaining = self._remaining()
                        if remaining is not None and remaining <= 0:
                            raise DeadlineExceeded(
                                f"Deadline passed during '{sanitize_command(command.text)}' on {self.device_id}"
                            ) from e
                        raise
                    except PrivilegeError:
                        await self._teardown("privilege refused")
                        raise
        except COMMAND_RETRYABLE_EXCEPTIONS as e:
            raise SessionError(
                f"'{sanitize_command(command.text)}' failed on {self.device_id} "
                f"after {attempts} attempts: {e}"
            ) from e

    async def close(self) -> None:
        """Close the session, leaving administrator mode without saving."""
        async with self._lock:
            await self._teardown("closed", graceful=True)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class CoordinatorPool:
    """One coordinator per device name; independent devices run in parallel."""

    def __init__(
        self,
        resolve: Callable[[str], DeviceIdentity],
        settings: Optional[EngineSettings] = None,
        transport_factory: TransportFactory = create_transport,
    ):
        self._resolve = resolve
        self.settings = settings or EngineSettings()
        self._transport_factory = transport_factory
        self._coordinators: dict[str, SessionCoordinator] = {}

    def get(self, device_id: str) -> SessionCoordinator:
        if device_id not in self._coordinators:
            self._coordinators[device_id] = SessionCoordinator(
                self._resolve(device_id), self._transport_factory, self.settings
            )
        return self._coordinators[device_id]

    async def close_all(self) -> None:
        """Close every session."""
        coordinators = list(self._coordinators.values())
        self._coordinators.clear()
        results = await asyncio.gather(*(c.close() for c in coordinators), return_exceptions=True)
        for coordinator, result in zip(coordinators, results):
            if isinstance(result, Exception):
                logger.warning(f"Error closing {coordinator.device_id}: {result}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all()
        return False
