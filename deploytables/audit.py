"""
Deployment audit logging with structured JSON-Lines.
"""
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_config_dir

SECRET_FIELDS = ("connection_string", "storage_access_key", "account_key", "secret")


class AuditLogger:
    """Writes structured JSONL audit logs without credentials."""
    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = log_file or get_config_dir() / "audit.jsonl"

    def log(self, event_type: str, **kwargs: Any) -> None:
        """Log a structured deployment event."""
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "details": kwargs
        }

        for key in SECRET_FIELDS:
            if key in entry["details"]:
                entry["details"][key] = "*****"

        try:
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            # The audit trail must never fail a deployment phase
            sys.stderr.write(f"[deploytables audit] Failed to write log: {e}\n")

def get_audit_log(last_n: int = 50, log_file: Optional[Path] = None) -> list[Dict[str, Any]]:
    """Retrieve the last N events from the audit log."""
    log_file = log_file or get_config_dir() / "audit.jsonl"
    if not log_file.exists():
        return []

    with log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    parsed = []
    for line in lines[-last_n:]:
        if not line.strip():
            continue
        try:
            parsed.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return parsed
