"""Command/response framing for the RTX CLI.

Turns one Command into one CommandResult over a Session:

- administrator elevation when the command needs it
- prompt detection (``[RTX1210] > `` / ``[RTX1210] # ``)
- ``---more---`` pagination answered with a space
- confirmation questions answered with the command's response
- echo and prompt removal
- wrap reassembly
- device error lines captured as ``ExitSignal.DEVICE_ERROR``
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..errors import CommandTimeoutError, PrivilegeError
from ..transport.base import Privilege, Session
from ..utils.logging_config import timed_section
from ..utils.sanitizer import sanitize_command
from .schema import Command, CommandResult, ExitSignal

logger = logging.getLogger(__name__)

PROMPT_PATTERN = re.compile(r"^\[[^\]\r\n]+\]\s?(?P<mode>[>#])\s?$")
PROMPT_PREFIX = re.compile(r"^\[[^\]\r\n]+\]\s?[>#]\s?")
MORE_PATTERN = re.compile(r"-{2,3}\s?more\s?-{2,3}", re.IGNORECASE)
PASSWORD_PATTERN = re.compile(r"password:\s*$", re.IGNORECASE)
SAVE_PATTERN = re.compile(r"save (new )?config(uration)?\s*\?|save changes\s*\?", re.IGNORECASE)
ELEVATION_FAILURE = re.compile(r"incorrect|failed|invalid|denied", re.IGNORECASE)

# Error patterns that indicate command failure (must appear at line start)
ERROR_PATTERNS = [
    r"^%?\s*Error\s*:",
    r"^Command failed:",
    r"^Invalid (parameter|command|input)",
    r"^Permission denied",
    r"^Connection timeout",
    r"^.*already exists\.?$",
    r"^.*not found\.?$",
]

# Patterns that look like errors but are actually OK
INFO_PATTERNS = [
    r"^#",  # configuration comments
    r"\d+\s+errors",  # interface statistics
]

DEFAULT_COMMAND_TIMEOUT = 30.0


def has_error(lines: Iterable[str]) -> Optional[str]:
    """Return the first device error line, if any.

    Only matches errors at line start to avoid false positives from
    configuration comments and statistics.
    """
    for line in lines:
        line_stripped = line.strip()
        if not line_stripped:
            continue

        if any(re.search(p, line_stripped, re.IGNORECASE) for p in INFO_PATTERNS):
            continue

        for pattern in ERROR_PATTERNS:
            if re.search(pattern, line_stripped, re.IGNORECASE):
                return line_stripped

    return None


def reassemble_wrapped_lines(
    lines: Iterable[str],
    width: Optional[int] = None,
    boundary=None,
) -> list[str]:
    """Join physical lines the device wrapped back into logical lines.

    A physical line exactly ``width`` long always continues onto the next one
    unless that one starts a new record. Otherwise a line continues the
    previous one when it does not start a new record and either the previous
    line is not yet a complete record or the join forms one. Joining is raw
    concatenation, so mid-token and at-space wraps both come back exactly.

    Args:
        lines: Physical lines without terminators
        width: Terminal width the device wraps at
        boundary: RecordBoundary of the grammar being read, if known
    """
    result: list[str] = []
    carry = False

    for raw in lines:
        line = raw.rstrip("\r\n")
        if result and line and _continues(result[-1], line, carry, boundary):
            result[-1] += line
        else:
            result.append(line)
        carry = width is not None and len(line) >= width

    return result


def _continues(previous: str, line: str, carry: bool, boundary) -> bool:
    if boundary is not None and boundary.starts_record(line):
        return False
    if carry:
        return True
    if boundary is None or not previous.strip():
        return False
    return not boundary.is_complete(previous) or boundary.is_complete(previous + line)


def strip_echo(lines: list[str], text: str) -> list[str]:
    """Drop the echoed command, which may itself be wrapped over several lines."""
    target = text.strip()
    accumulated = ""
    for index, line in enumerate(lines):
        accumulated += line
        candidate = PROMPT_PREFIX.sub("", accumulated).strip()
        if candidate == target:
            return lines[index + 1:]
        if not candidate or not target.startswith(candidate):
            break
    return lines


@dataclass
class _Response:
    """Raw lines read up to a terminator."""
    lines: list[str] = field(default_factory=list)
    terminator: str = ""


class CommandFramer:
    """Runs commands over one Session, one at a time."""

    def __init__(self, session: Session, default_timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.session = session
        self.default_timeout = default_timeout

    @property
    def device_id(self) -> str:
        return self.session.device_id

    def _record_prompt(self, prompt: str) -> None:
        match = PROMPT_PATTERN.match(prompt)
        if match and match.group("mode") == "#":
            self.session.raise_privilege(Privilege.ADMINISTRATOR)

    async def _read_until(
        self,
        timeout: float,
        stops: tuple[re.Pattern, ...] = (),
        confirm: Optional[re.Pattern] = None,
        confirm_response: str = "N",
        command: Optional[str] = None,
    ) -> _Response:
        """Read lines until the prompt or one of ``stops`` appears as a fragment."""
        transport = self.session.transport
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        response = _Response()
        pending = ""

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise CommandTimeoutError(
                    f"No prompt from {self.device_id} within {timeout:.1f}s",
                    command=command,
                    partial_output="\n".join(response.lines + [pending]),
                )
            try:
                chunk = await transport.read_line(remaining)
            except CommandTimeoutError as e:
                raise CommandTimeoutError(
                    f"No prompt from {self.device_id} within {timeout:.1f}s",
                    command=command,
                    partial_output="\n".join(response.lines + [pending + e.partial_output]),
                ) from e

            terminated = chunk.endswith("\n")
            text = pending + chunk.rstrip("\r\n")
            pending = ""
            # Carriage returns overwrite the visible line (pager erase)
            if "\r" in text:
                text = text.split("\r")[-1]

            if MORE_PATTERN.search(text):
                await transport.write(" ")
                text = MORE_PATTERN.sub("", text)
                if text.strip():
                    response.lines.append(text)
                continue

            if not terminated:
                if PROMPT_PATTERN.match(text):
                    response.terminator = text
                    return response
                if any(stop.search(text) for stop in stops):
                    response.terminator = text
                    return response
                if confirm is not None and confirm.search(text):
                    logger.debug(f"Answering confirmation on {self.device_id}: {text.strip()!r}")
                    await transport.write(f"{confirm_response}\r")
                    continue
                pending = text
                continue

            response.lines.append(text)

    async def handshake(self, timeout: Optional[float] = None) -> None:
        """Wait for the first prompt and run the identity's setup commands.

        Setup commands that the device rejects are logged and skipped.
        """
        timeout = timeout or self.default_timeout
        response = await self._read_until(timeout)
        self._record_prompt(response.terminator)

        for template in self.session.identity.setup_commands:
            text = template.format(line_width=self.session.line_width)
            result = await self.execute(Command(text=text, privilege=Privilege.USER), timeout)
            if not result.ok:
                logger.warning(
                    f"Setup command '{text}' failed on {self.device_id}: {result.error_message}"
                )

    async def elevate(self, timeout: Optional[float] = None) -> None:
        """Enter administrator mode.

        Raises:
            PrivilegeError: the device did not confirm administrator mode
        """
        timeout = timeout or self.default_timeout
        transport = self.session.transport
        logger.debug(f"Entering administrator mode on {self.device_id}")

        await transport.write("administrator\r")
        response = await self._read_until(timeout, stops=(PASSWORD_PATTERN,), command="administrator")

        if PASSWORD_PATTERN.search(response.terminator):
            await transport.write(self.session.identity.get_admin_password() + "\r")
            # A second password request means the first one was refused
            response = await self._read_until(timeout, stops=(PASSWORD_PATTERN,), command="administrator")

        failure = next((line for line in response.lines if ELEVATION_FAILURE.search(line)), None)
        if failure:
            raise PrivilegeError(f"Administrator mode rejected on {self.device_id}: {failure.strip()}")

        match = PROMPT_PATTERN.match(response.terminator)
        if not match or match.group("mode") != "#":
            raise PrivilegeError(f"Administrator mode not confirmed on {self.device_id}")

        self.session.raise_privilege(Privilege.ADMINISTRATOR)
        logger.info(f"Administrator mode active on {self.device_id}")

    async def execute(
        self,
        command: Command,
        timeout: Optional[float] = None,
        boundary=None,
    ) -> CommandResult:
        """Send exactly one command and capture its result.

        Device error lines do not raise; they come back as
        ``ExitSignal.DEVICE_ERROR`` with the error text.

        Raises:
            CommandTimeoutError: no prompt before the timeout
            TransportClosedError: the connection dropped
            PrivilegeError: elevation was needed and rejected
        """
        timeout = command.timeout or timeout or self.default_timeout
        if command.privilege > self.session.privilege:
            await self.elevate(timeout)

        confirm = re.compile(command.confirm_pattern, re.IGNORECASE) if command.confirm_pattern else None
        shown = sanitize_command(command.text)
        logger.debug(f"[{self.device_id}] >>> {shown}")

        start = time.perf_counter()
        async with timed_section("command", self.device_id, command=shown):
            await self.session.transport.write(command.text + "\r")
            response = await self._read_until(
                timeout,
                confirm=confirm,
                confirm_response=command.confirm_response,
                command=command.text,
            )
        elapsed = time.perf_counter() - start
        self.session.touch()

        lines = strip_echo(response.lines, command.text)
        lines = reassemble_wrapped_lines(lines, self.session.line_width, boundary)
        lines = [line for line in lines if line.strip()]

        result = CommandResult(command=command, lines=lines, elapsed=elapsed)
        error = has_error(lines)
        if error:
            result.signal = ExitSignal.DEVICE_ERROR
            result.error_message = error
            logger.warning(f"[{self.device_id}] '{shown}' rejected: {error}")
        else:
            logger.debug(f"[{self.device_id}] <<< {len(lines)} lines in {elapsed:.2f}s")
        return result

    async def logout(self, timeout: float = 5) -> None:
        """Leave administrator mode without saving, then end the shell."""
        transport = self.session.transport
        if self.session.privilege >= Privilege.ADMINISTRATOR:
            await transport.write("exit\r")
            await self._read_until(timeout, confirm=SAVE_PATTERN, confirm_response="N", command="exit")
        await transport.write("exit\r")
