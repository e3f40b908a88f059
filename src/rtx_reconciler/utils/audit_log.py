"""Audit logging for router configuration changes.

Every apply and delete is written as one JSON line with:
- Timestamp, device and resource grammar
- Commands sent (secrets redacted)
- Before/after records
- Outcome and device error message
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .sanitizer import sanitize_command

audit_logger = logging.getLogger("rtxcraft.audit")

DEFAULT_AUDIT_DIR = "~/.rtxcraft"


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.rtxcraft/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False

    return audit_file


@dataclass
class ChangeRecord:
    """Record of a configuration change."""
    timestamp: str
    device_id: str
    resource: str  # grammar name, e.g. "syslog"
    operation: str  # apply, delete
    dry_run: bool
    success: bool
    parameters: dict
    commands: list[str] = field(default_factory=list)
    before_state: Optional[dict] = None
    after_state: Optional[dict] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Collects the state around one change and logs it."""

    def __init__(self, device_id: str, resource: str):
        self.device_id = device_id
        self.resource = resource
        self._snapshots: dict[str, Any] = {}

    def snapshot(self, name: str, state: Any) -> None:
        """Capture a record before or after a change (e.g. "before")."""
        self._snapshots[name] = state

    def get_snapshot(self, name: str) -> Optional[Any]:
        return self._snapshots.get(name)

    def log_change(
        self,
        operation: str,
        parameters: dict,
        success: bool,
        commands: Optional[list[str]] = None,
        error: Optional[str] = None,
        dry_run: bool = False,
    ) -> ChangeRecord:
        """Log a configuration change.

        Before/after state come from the "before" and "after" snapshots.

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device_id=self.device_id,
            resource=self.resource,
            operation=operation,
            dry_run=dry_run,
            success=success,
            parameters=parameters,
            commands=[sanitize_command(c) for c in (commands or [])],
            before_state=self.get_snapshot("before"),
            after_state=self.get_snapshot("after"),
            error=error,
        )

        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    resource: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.rtxcraft/audit.log
        device_id: Filter by device
        resource: Filter by resource grammar name
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if device_id and record.device_id != device_id:
                continue
            if resource and record.resource != resource:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
