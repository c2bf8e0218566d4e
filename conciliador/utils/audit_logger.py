"""
Audit logging for reconciliation decisions.
"""

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import List, Optional

import structlog

from ..config import Settings, get_settings
from ..models import AuditAction, AuditEntry

logger = structlog.get_logger()


class AuditLogger:
    """
    Logger for audit trail of link decisions.
    Provides both in-memory and file-based logging.
    """

    def __init__(self, job_id: str, settings: Optional[Settings] = None):
        self.job_id = job_id
        self.entries: List[AuditEntry] = []
        self.settings = settings or get_settings()
        self._lock = Lock()

    def log(self, entry: AuditEntry) -> None:
        """Add an audit entry."""
        with self._lock:
            self.entries.append(entry)

        # Also log to structlog
        log = logger.info if entry.success else logger.warning
        log(
            entry.message,
            action=entry.action.value,
            cartorio_id=entry.cartorio_id,
            extrato_item_ids=entry.extrato_item_ids,
            lancamento_ids=entry.lancamento_ids,
            conciliacao_id=entry.conciliacao_id,
            success=entry.success,
        )

    def log_many(self, entries: List[AuditEntry]) -> None:
        """Add multiple audit entries."""
        for entry in entries:
            self.log(entry)

    def get_entries(
        self,
        action_filter: Optional[AuditAction] = None,
        success_only: bool = False,
    ) -> List[AuditEntry]:
        """Get filtered audit entries."""
        with self._lock:
            entries = list(self.entries)

        if action_filter:
            entries = [e for e in entries if e.action == AuditAction(action_filter)]

        if success_only:
            entries = [e for e in entries if e.success]

        return entries

    def export_to_file(self, output_path: Optional[Path] = None) -> Path:
        """Export audit log to JSON file."""
        if output_path is None:
            output_path = self.settings.reports_dir / f"audit_{self.job_id}.json"

        output_path.parent.mkdir(parents=True, exist_ok=True)

        entries = self.get_entries()
        data = {
            "job_id": self.job_id,
            "exported_at": datetime.utcnow().isoformat(),
            "total_entries": len(entries),
            "entries": [
                {
                    "id": e.id,
                    "timestamp": e.timestamp.isoformat(),
                    "action": e.action.value,
                    "cartorio_id": e.cartorio_id,
                    "extrato_item_ids": e.extrato_item_ids,
                    "lancamento_ids": e.lancamento_ids,
                    "conciliacao_id": e.conciliacao_id,
                    "message": e.message,
                    "details": e.details,
                    "success": e.success,
                    "error_message": e.error_message,
                }
                for e in entries
            ],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        logger.info("Audit log exported", path=str(output_path))
        return output_path

    def summary(self) -> dict:
        """Get summary statistics of audit log."""
        entries = self.get_entries()
        action_counts = Counter(e.action.value for e in entries)
        success_count = sum(1 for e in entries if e.success)
        error_count = sum(1 for e in entries if not e.success)

        return {
            "total_entries": len(entries),
            "success_count": success_count,
            "error_count": error_count,
            "action_counts": dict(action_counts),
        }
