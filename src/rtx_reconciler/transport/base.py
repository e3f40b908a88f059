"""Transport abstraction for the router's remote shell.

A transport only knows how to authenticate, write text and hand back lines.
Prompt handling, paging and privilege live in the command framer.
"""
import asyncio
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from ..errors import CommandTimeoutError, TransportClosedError

logger = logging.getLogger(__name__)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")

# Sent once after login; failures are logged and ignored
DEFAULT_SETUP_COMMANDS = (
    "console character en.ascii",
    "console lines infinity",
    "console columns {line_width}",
)


class Privilege(IntEnum):
    """CLI privilege level. Ordered so that comparisons read naturally."""
    USER = 0
    ADMINISTRATOR = 1


@dataclass
class DeviceIdentity:
    """Connection details for one router."""
    name: str
    host: str
    port: int = 22
    username: str = ""
    type: str = "ssh"
    password: Optional[str] = None
    password_env: str = "RTX_PASSWORD"
    admin_password: Optional[str] = None
    admin_password_env: str = "RTX_ADMIN_PASSWORD"
    timeout: float = 30
    retries: int = 3
    retry_delay: float = 2
    line_width: int = 200
    # Host key verification
    known_hosts_file: Optional[str] = None
    host_key: Optional[str] = None
    skip_host_key_check: bool = False
    setup_commands: list[str] = field(default_factory=lambda: list(DEFAULT_SETUP_COMMANDS))

    def get_password(self) -> str:
        """Get login password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    def get_admin_password(self) -> str:
        """Get administrator password, falling back to the login password."""
        if self.admin_password:
            return self.admin_password
        return os.environ.get(self.admin_password_env) or self.get_password()


class Transport(ABC):
    """Line-oriented access to one remote shell."""

    def __init__(self, identity: DeviceIdentity):
        self.identity = identity

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    async def open(self) -> None:
        """Authenticate and start the interactive shell.

        Raises:
            AuthenticationError: credentials rejected
            ConnectError: host unreachable or shell could not be started
        """
        pass

    @abstractmethod
    async def write(self, data: str) -> None:
        pass

    @abstractmethod
    async def read_line(self, timeout: float) -> str:
        """Return the next line including its ``\\n``.

        A fragment without ``\\n`` is returned once the device stops sending,
        which is how prompts and pager markers arrive.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        pass

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class BufferedTransport(Transport):
    """Transport that builds lines out of raw chunks.

    Subclasses implement ``_recv`` (return whatever is available, ``""`` when
    nothing arrived within the poll interval) and ``_send``.
    """

    poll_interval: float = 0.2

    def __init__(self, identity: DeviceIdentity):
        super().__init__(identity)
        self._buffer = ""

    @abstractmethod
    async def _recv(self, timeout: float) -> str:
        pass

    @abstractmethod
    async def _send(self, data: str) -> None:
        pass

    async def write(self, data: str) -> None:
        if not self.is_open:
            raise TransportClosedError(f"Transport to {self.identity.name} is closed")
        await self._send(data)

    async def read_line(self, timeout: float) -> str:
        if not self.is_open:
            raise TransportClosedError(f"Transport to {self.identity.name} is closed")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            newline = self._buffer.find("\n")
            if newline >= 0:
                line = self._buffer[:newline + 1]
                self._buffer = self._buffer[newline + 1:]
                return line

            remaining = deadline - loop.time()
            if remaining <= 0:
                partial, self._buffer = self._buffer, ""
                raise CommandTimeoutError(
                    f"Timed out after {timeout:.1f}s waiting for {self.identity.name}",
                    partial_output=partial,
                )

            chunk = await self._recv(min(self.poll_interval, remaining))
            if chunk:
                self._buffer += ANSI_ESCAPE.sub("", chunk)
                continue

            # Device went quiet with an unterminated fragment pending
            if self._buffer:
                fragment, self._buffer = self._buffer, ""
                return fragment


class Session:
    """One authenticated CLI session to one device.

    Holds the privilege level, negotiated line width and last activity time.
    The coordinator owns it; nothing else keeps a reference across calls.
    """

    def __init__(self, identity: DeviceIdentity, transport: Transport):
        self.identity = identity
        self.transport = transport
        self.privilege = Privilege.USER
        self.line_width = identity.line_width
        self.last_activity = time.monotonic()
        self.opened_at = self.last_activity

    @classmethod
    async def open(cls, identity: DeviceIdentity, transport: Transport) -> "Session":
        """Authenticate the transport and wrap it in a session."""
        await transport.open()
        logger.info(f"Session opened to {identity.name} ({identity.host}:{identity.port})")
        return cls(identity, transport)

    @property
    def is_open(self) -> bool:
        return self.transport.is_open

    @property
    def device_id(self) -> str:
        return self.identity.name

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_activity

    def raise_privilege(self, level: Privilege) -> None:
        """Record a privilege change. Never lowers the current level."""
        if level > self.privilege:
            self.privilege = level

    async def close(self) -> None:
        await self.transport.close()
        logger.info(f"Session to {self.identity.name} closed")

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Session({self.identity.name}, {state}, {self.privilege.name})"
