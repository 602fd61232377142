"""
Audit Logging Module.

This module records every step of the employee lifecycle and escalation
workflows as an append-only JSON line, one file per day.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import AuditRecord

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Append-only logger for audit events.

    Requests are handled concurrently, so writes to the daily file are
    serialized with a lock.
    """

    def __init__(self, audit_dir: str = "audit_logs"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.audit_dir / f"audit_{date_str}.jsonl"
        line = json.dumps(record.model_dump(mode="json"))

        try:
            with self._lock, open(log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error(f"Failed to log audit event: {e}")
            raise

        logger.debug(f"Logged audit event {record.id} ({record.event_type}/{record.action})")
        return record.id

    def get_events(
        self,
        target_id: Optional[str] = None,
        actor: Optional[str] = None,
        event_type: Optional[str] = None,
        workflow_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events with filtering, most recent first.

        Args:
            target_id: Filter by affected employee or escalation
            actor: Filter by acting principal
            event_type: Filter by operation name
            workflow_id: Filter by operation run
            start_date: Filter by start date
            end_date: Filter by end date
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results = []

        log_files = sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True)

        for log_file in log_files:
            if len(results) >= limit:
                break

            try:
                with open(log_file, encoding="utf-8") as f:
                    lines = f.readlines()
            except OSError as e:
                logger.error(f"Failed to read log file {log_file}: {e}")
                continue

            for line in reversed(lines):
                if len(results) >= limit:
                    break

                try:
                    record = AuditRecord(**json.loads(line))
                except (ValueError, TypeError) as e:
                    logger.warning(f"Failed to parse audit record: {e}")
                    continue

                if target_id and record.target_id != target_id:
                    continue
                if actor and record.actor != actor:
                    continue
                if event_type and record.event_type != event_type:
                    continue
                if workflow_id and record.workflow_id != workflow_id:
                    continue
                if start_date and record.timestamp < start_date:
                    continue
                if end_date and record.timestamp > end_date:
                    continue

                results.append(record)

        return results

    def generate_activity_report(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        """
        Summarize audited activity for a given period.

        Args:
            start_date: Start of the reporting period
            end_date: End of the reporting period

        Returns:
            Dictionary with totals per operation and the failed steps
        """
        events = self.get_events(start_date=start_date, end_date=end_date, limit=10000)

        by_operation: Dict[str, int] = {}
        for event in events:
            by_operation[event.event_type] = by_operation.get(event.event_type, 0) + 1

        failed = [e for e in events if not e.success]
        return {
            "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "summary": {
                "total_events": len(events),
                "successful_steps": len(events) - len(failed),
                "failed_steps": len(failed),
                "by_operation": by_operation,
            },
            "failures": [e.model_dump(mode="json") for e in failed],
        }
