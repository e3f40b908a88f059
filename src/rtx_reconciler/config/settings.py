"""Engine tunables from the inventory's ``engine:`` section and the environment.

Environment Variables (override the file):
    RTXCRAFT_COMMAND_TIMEOUT: Seconds to wait for the prompt after a command (default: 30)
    RTXCRAFT_IDLE_TIMEOUT: Seconds before an unused session is closed (default: 300)
    RTXCRAFT_IDLE_CHECK_INTERVAL: Seconds between idle checks (default: 30)
    RTXCRAFT_COMMAND_ATTEMPTS: Attempts per command across reconnects (default: 2)
"""
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "RTXCRAFT_"


@dataclass
class EngineSettings:
    """Timeouts and retry budget shared by all coordinators."""
    command_timeout: float = 30.0
    idle_timeout: float = 300.0
    idle_check_interval: float = 30.0
    command_attempts: int = 2

    def __post_init__(self):
        if self.command_attempts < 1:
            raise ValueError("command_attempts must be at least 1")
        if self.command_timeout <= 0 or self.idle_timeout <= 0 or self.idle_check_interval <= 0:
            raise ValueError("timeouts must be positive")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """Build settings from a config section, letting the environment win."""
        data = dict(data or {})
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        for spec in fields(cls):
            env_value = environ.get(f"{ENV_PREFIX}{spec.name.upper()}")
            raw = env_value if env_value is not None else data.pop(spec.name, None)
            if raw is None:
                continue
            cast = int if spec.type in (int, "int") else float
            try:
                values[spec.name] = cast(raw)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid engine setting {spec.name}={raw!r}") from e

        for unknown in data:
            logger.warning(f"Ignoring unknown engine setting: {unknown}")
        return cls(**values)
