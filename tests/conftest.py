"""Shared fixtures: an in-memory RTX router reachable through a fake transport."""
import asyncio
import re
from typing import Optional

import pytest

from rtx_reconciler.config.settings import EngineSettings
from rtx_reconciler.engine.coordinator import SessionCoordinator
from rtx_reconciler.errors import AuthenticationError, TransportClosedError
from rtx_reconciler.transport.base import BufferedTransport, DeviceIdentity

USER_PROMPT = "[RTX1210] > "
ADMIN_PROMPT = "[RTX1210] # "
MORE = "---more---"

# Lines that replace each other; anything else is its own slot
SLOTS = [
    re.compile(r"^syslog host \S+"),
    re.compile(r"^syslog (local address|facility|notice|info|debug)"),
    re.compile(r"^dns static \S+"),
    re.compile(r"^(no )?dns domain lookup"),
    re.compile(r"^dns (server|domain|service|private address spoof)"),
    re.compile(r"^ip route \S+ gateway (pp |tunnel |dhcp )?\S+"),
    re.compile(r"^nat descriptor masquerade static \d+ \d+"),
    re.compile(r"^nat descriptor address (outer|inner) \d+"),
    re.compile(r"^nat descriptor type \d+"),
]

NEGATED_SETTINGS = {"no dns domain lookup"}


def slot_of(line: str) -> str:
    for pattern in SLOTS:
        match = pattern.match(line)
        if match:
            return match.group(0).replace("no dns", "dns")
    return line


class FakeRouter:
    """Running configuration and CLI behaviour shared by every connection.

    Attributes:
        hidden_defaults: lines the device accepts but never prints
        fail_on: command prefix -> error line printed instead of applying
        drop_on: command -> number of times the connection drops on it
        hang_on: commands that never get a prompt back
    """

    def __init__(
        self,
        config: tuple[str, ...] = (),
        admin_password: str = "adminpass",
        width: int = 80,
        page_size: int = 20,
        hidden_defaults: tuple[str, ...] = (
            "syslog notice off",
            "syslog info off",
            "syslog debug off",
            "dns domain lookup on",
            "dns private address spoof off",
        ),
    ):
        self.config = list(config)
        self.admin_password = admin_password
        self.width = width
        self.page_size = page_size
        self.hidden_defaults = set(hidden_defaults)
        self.fail_on: dict[str, str] = {}
        self.drop_on: dict[str, int] = {}
        self.hang_on: set[str] = set()
        self.refuse_login = False
        self.opens = 0
        self.commands: list[str] = []
        self.save_answers: list[str] = []
        self.saves = 0
        self.unsaved = False

    def transport(self, identity: DeviceIdentity) -> "FakeTransport":
        """Transport factory for SessionCoordinator."""
        return FakeTransport(identity, self)

    @property
    def config_commands(self) -> list[str]:
        """Commands that changed or tried to change configuration."""
        return [
            c for c in self.commands
            if not c.startswith(("show ", "console ", "administrator", "exit", "save"))
        ]

    def apply_line(self, text: str) -> Optional[str]:
        """Apply one configuration command; returns an error line or None."""
        for prefix, message in self.fail_on.items():
            if text.startswith(prefix):
                return message

        if text.startswith("no ") and text not in NEGATED_SETTINGS:
            target = text[3:]
            kept = [line for line in self.config if not (line == target or line.startswith(target + " "))]
            if len(kept) == len(self.config):
                return "Error: not found"
            self.config = kept
            self.unsaved = True
            return None

        slot = slot_of(text)
        self.config = [line for line in self.config if slot_of(line) != slot]
        if text not in self.hidden_defaults:
            self.config.append(text)
        self.unsaved = True
        return None

    def grep(self, pattern: Optional[str]) -> list[str]:
        if pattern is None:
            return list(self.config)
        return [line for line in self.config if pattern in line]


class FakeTransport(BufferedTransport):
    """One connection to a FakeRouter, speaking the RTX console dialect."""

    poll_interval = 0.01

    def __init__(self, identity: DeviceIdentity, router: FakeRouter):
        super().__init__(identity)
        self.router = router
        self._open = False
        self._outbound: list[str] = []
        self._inbound = ""
        self._admin = False
        self._state = "command"
        self._pages: list[list[str]] = []
        self.width = router.width
        self.page_size = router.page_size

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self.router.opens += 1
        if self.router.refuse_login:
            raise AuthenticationError(f"Authentication failed for {self.identity.name}")
        self._open = True
        self._emit("\r\nRTX1210 Rev.14.01.42 (Tue Oct 17 12:00:00 2026)\r\n" + USER_PROMPT)

    async def close(self) -> None:
        self._open = False

    async def _recv(self, timeout: float) -> str:
        if not self._open:
            raise TransportClosedError(f"Connection to {self.identity.name} lost")
        if self._outbound:
            data = "".join(self._outbound)
            self._outbound.clear()
            return data
        await asyncio.sleep(timeout)
        return ""

    async def _send(self, data: str) -> None:
        if self._pages and data == " ":
            self._next_page()
            return
        self._inbound += data
        while "\r" in self._inbound:
            line, self._inbound = self._inbound.split("\r", 1)
            self._handle(line)

    # --- Device behaviour ---

    def _emit(self, text: str) -> None:
        self._outbound.append(text)

    @property
    def prompt(self) -> str:
        return ADMIN_PROMPT if self._admin else USER_PROMPT

    def _physical(self, lines: list[str]) -> list[str]:
        physical = []
        for line in lines:
            while len(line) > self.width:
                physical.append(line[:self.width])
                line = line[self.width:]
            physical.append(line)
        return physical

    def _output(self, lines: list[str]) -> None:
        physical = self._physical(lines)
        if self.page_size and len(physical) > self.page_size:
            self._pages = [
                physical[i:i + self.page_size] for i in range(0, len(physical), self.page_size)
            ]
            self._next_page(first=True)
            return
        self._emit("".join(f"{line}\r\n" for line in physical) + self.prompt)

    def _next_page(self, first: bool = False) -> None:
        page = self._pages.pop(0)
        text = "" if first else "\r" + " " * len(MORE) + "\r"
        text += "".join(f"{line}\r\n" for line in page)
        self._emit(text + (MORE if self._pages else self.prompt))

    def _handle(self, text: str) -> None:
        router = self.router

        if self._state == "password":
            self._state = "command"
            if text == router.admin_password:
                self._admin = True
                self._emit("\r\n" + self.prompt)
            else:
                self._emit("\r\nError: Incorrect password\r\n" + self.prompt)
            return

        if self._state == "save":
            self._state = "command"
            router.save_answers.append(text)
            if text.upper() == "Y":
                router.saves += 1
                router.unsaved = False
            self._admin = False
            self._emit(f"{text}\r\n" + self.prompt)
            return

        router.commands.append(text)
        if router.drop_on.get(text):
            router.drop_on[text] -= 1
            self._open = False
            return
        self._emit(f"{text}\r\n")
        if text in router.hang_on:
            return

        if text == "administrator":
            if self._admin:
                self._emit(self.prompt)
            else:
                self._state = "password"
                self._emit("Password: ")
        elif text == "exit":
            if not self._admin:
                self._open = False
            elif router.unsaved:
                self._state = "save"
                self._emit("Save new configuration ? (Y/N)")
            else:
                self._admin = False
                self._emit(self.prompt)
        elif text.startswith("console "):
            self._console(text)
        elif text.startswith("show config"):
            _, _, pattern = text.partition("| grep ")
            self._output(router.grep(pattern.strip('"') if pattern else None))
        elif not self._admin:
            self._emit("Error: Permission denied\r\n" + self.prompt)
        elif text == "save":
            router.saves += 1
            router.unsaved = False
            self._emit(self.prompt)
        else:
            error = router.apply_line(text)
            self._emit((f"{error}\r\n" if error else "") + self.prompt)

    def _console(self, text: str) -> None:
        words = text.split()
        if words[1:2] == ["columns"] and len(words) == 3:
            self.width = int(words[2])
        elif words[1:] == ["lines", "infinity"]:
            self.page_size = 0
        elif words[1:2] != ["character"]:
            self._emit("Error: Invalid parameter\r\n" + self.prompt)
            return
        self._emit(self.prompt)


# --- Fixtures ---

SYSLOG_CONFIG = (
    "ip route default gateway 192.168.0.1",
    "syslog host 192.168.1.10",
    "syslog host 192.168.1.11 1514",
    "syslog facility local0",
    "syslog notice on",
    "dns server 8.8.8.8 8.8.4.4",
)


@pytest.fixture
def router():
    return FakeRouter(config=SYSLOG_CONFIG)


@pytest.fixture
def identity():
    return DeviceIdentity(
        name="rtx-test",
        host="192.0.2.1",
        username="user",
        password="userpass",
        admin_password="adminpass",
    )


@pytest.fixture
def settings():
    return EngineSettings(command_timeout=2.0, idle_timeout=60.0, idle_check_interval=60.0)


@pytest.fixture
def coordinator(router, identity, settings):
    return SessionCoordinator(identity, router.transport, settings)
