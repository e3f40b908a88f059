"""Router inventory loaded from YAML configuration."""
import dataclasses
import logging
from pathlib import Path
from typing import Optional

import yaml

from ..transport.base import DeviceIdentity
from .settings import EngineSettings

logger = logging.getLogger(__name__)

_IDENTITY_FIELDS = {f.name for f in dataclasses.fields(DeviceIdentity)}


class DeviceInventory:
    """Manages the router inventory loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: RTX_PASSWORD
      known_hosts_file: ~/.ssh/known_hosts

    engine:
      command_timeout: 30
      idle_timeout: 300

    devices:
      rtx-core:
        host: 192.168.1.1
      rtx-branch:
        host: 10.10.0.1
        port: 2222

    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._identities: dict[str, DeviceIdentity] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "rtxcraft" / "devices.yaml",
            Path("/etc/rtxcraft/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        # Apply defaults
        defaults = self._config.get("defaults", {}) or {}
        for device_id, device_config in (self._config.get("devices", {}) or {}).items():
            if device_config is None:
                device_config = self._config["devices"][device_id] = {}
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value

        logger.debug(f"Loaded {len(self.get_device_ids())} devices from {self.config_path}")

    @property
    def settings(self) -> EngineSettings:
        return EngineSettings.from_mapping(self._config.get("engine"))

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list((self._config.get("devices") or {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices") or {}
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_identity(self, device_id: str) -> DeviceIdentity:
        """Connection details for a device.

        Raises:
            KeyError: unknown device
            ValueError: the entry has no host or has unknown keys
        """
        if device_id not in self._identities:
            config = dict(self.get_device_config(device_id))
            unknown = sorted(set(config) - _IDENTITY_FIELDS)
            if unknown:
                raise ValueError(f"Unknown settings for device {device_id}: {unknown}")
            if not config.get("host"):
                raise ValueError(f"Device {device_id} has no host")
            config.setdefault("name", device_id)
            if config.get("known_hosts_file"):
                config["known_hosts_file"] = str(Path(config["known_hosts_file"]).expanduser())
            self._identities[device_id] = DeviceIdentity(**config)
        return self._identities[device_id]
