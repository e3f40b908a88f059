"""SSH shell transport for RTX routers.

Technical details:
- Interactive shell via invoke_shell() on a vt100 PTY
- PTY width follows the identity's line_width so wrapping is predictable
- Blocking paramiko calls run in the default executor
- Host keys: known_hosts file, a pinned base64 key, or auto-add when
  verification is explicitly skipped
"""
import asyncio
import base64
import logging
from typing import Optional

import paramiko

from ..errors import AuthenticationError, ConnectError, TransportClosedError
from ..utils.connection import with_retry
from ..utils.logging_config import timed
from .base import BufferedTransport, DeviceIdentity

logger = logging.getLogger(__name__)

PTY_HEIGHT = 40


class SSHTransport(BufferedTransport):
    """Paramiko-backed interactive shell."""

    def __init__(self, identity: DeviceIdentity):
        super().__init__(identity)
        self._client: Optional[paramiko.SSHClient] = None
        self._shell: Optional[paramiko.Channel] = None

    @property
    def device_id(self) -> str:
        return self.identity.name

    @property
    def is_open(self) -> bool:
        return self._shell is not None and not self._shell.closed

    def _configure_host_keys(self, client: paramiko.SSHClient) -> None:
        identity = self.identity
        if identity.skip_host_key_check:
            logger.warning(f"Host key verification disabled for {identity.name}")
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            return

        if identity.host_key:
            key = paramiko.PKey.from_type_string(*_split_host_key(identity.host_key))
            host = identity.host if identity.port == 22 else f"[{identity.host}]:{identity.port}"
            client.get_host_keys().add(host, key.get_name(), key)
        if identity.known_hosts_file:
            client.load_host_keys(identity.known_hosts_file)
        else:
            client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

    def _connect(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        self._configure_host_keys(client)
        client.connect(
            self.identity.host,
            port=self.identity.port,
            username=self.identity.username,
            password=self.identity.get_password(),
            timeout=self.identity.timeout,
            allow_agent=False,
            look_for_keys=False,
        )
        return client

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def _connect_with_retry(self) -> paramiko.SSHClient:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._connect)

    @timed("ssh_open")
    async def open(self) -> None:
        """Establish SSH connection with interactive shell."""
        logger.info(f"Connecting to {self.identity.name} at {self.identity.host}:{self.identity.port}")
        loop = asyncio.get_running_loop()

        try:
            self._client = await self._connect_with_retry()
        except paramiko.AuthenticationException as e:
            raise AuthenticationError(f"Authentication failed for {self.identity.name}: {e}") from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ConnectError(f"Cannot connect to {self.identity.name}: {e}") from e

        def _get_shell():
            shell = self._client.invoke_shell(
                term="vt100", width=self.identity.line_width, height=PTY_HEIGHT
            )
            shell.settimeout(self.identity.timeout)
            return shell

        try:
            self._shell = await loop.run_in_executor(None, _get_shell)
        except (paramiko.SSHException, OSError) as e:
            await self.close()
            raise ConnectError(f"Cannot start shell on {self.identity.name}: {e}") from e

    async def _recv(self, timeout: float) -> str:
        if not self._shell:
            raise TransportClosedError(f"Not connected to {self.identity.name}")

        loop = asyncio.get_running_loop()
        shell = self._shell

        def _read():
            if shell.recv_ready():
                data = shell.recv(65535)
                if not data:
                    return None
                return data.decode("utf-8", errors="ignore")
            if shell.closed or shell.exit_status_ready():
                return None
            return ""

        try:
            text = await loop.run_in_executor(None, _read)
        except (OSError, paramiko.SSHException) as e:
            raise TransportClosedError(f"Read from {self.identity.name} failed: {e}") from e

        if text is None:
            raise TransportClosedError(f"Connection to {self.identity.name} closed by device")
        if not text:
            await asyncio.sleep(min(timeout, 0.05))
        return text

    async def _send(self, data: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._shell.sendall, data.encode("ascii", errors="replace"))
        except (OSError, paramiko.SSHException) as e:
            raise TransportClosedError(f"Write to {self.identity.name} failed: {e}") from e

    async def close(self) -> None:
        """Close SSH connection."""
        if self._shell:
            try:
                self._shell.close()
            except (OSError, paramiko.SSHException) as e:
                logger.debug(f"Error closing shell to {self.identity.name}: {e}")
            self._shell = None
        if self._client:
            try:
                self._client.close()
            except (OSError, paramiko.SSHException) as e:
                logger.debug(f"Error closing client to {self.identity.name}: {e}")
            self._client = None
        self._buffer = ""


def _split_host_key(host_key: str) -> tuple[str, bytes]:
    """Split "ssh-ed25519 AAAA..." (or a bare base64 blob) into type and bytes."""
    parts = host_key.split()
    if len(parts) >= 2:
        return parts[0], base64.b64decode(parts[1])

    blob = base64.b64decode(parts[0])
    # The key type is the first length-prefixed string inside the blob
    type_len = int.from_bytes(blob[:4], "big")
    return blob[4:4 + type_len].decode("ascii"), blob
