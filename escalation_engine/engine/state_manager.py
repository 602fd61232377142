"""
State Manager for the Escalation Engine.

Defines the record store contract for employees, escalations and the
configuration sets, and provides the in-memory implementation with
optional JSON file persistence used in mock mode and in tests.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..models import ConfigurationSet, Employee, Escalation

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """
    Abstract record store.

    Employee documents are addressed by a document key that may differ
    from the employee id, so lookups by id go through ``find_employee``.
    """

    @abstractmethod
    def find_employee(self, employee_id: str) -> Optional[Tuple[str, Employee]]:
        """
        Find an employee by its stored id attribute.

        Returns:
            (document key, Employee) if found, None otherwise
        """
        pass

    @abstractmethod
    def get_employee_by_email(self, email: str) -> Optional[Employee]:
        pass

    @abstractmethod
    def list_employees(self) -> List[Employee]:
        pass

    @abstractmethod
    def save_employee(self, employee: Employee, doc_key: Optional[str] = None) -> str:
        """Write or merge an employee record. Returns the document key."""
        pass

    @abstractmethod
    def update_employee(self, doc_key: str, fields: Dict[str, Any]) -> Employee:
        """Apply a partial update to an existing record."""
        pass

    @abstractmethod
    def delete_employee(self, doc_key: str) -> None:
        pass

    @abstractmethod
    def save_escalation(self, escalation: Escalation) -> None:
        pass

    @abstractmethod
    def get_escalation(self, escalation_id: str) -> Optional[Escalation]:
        pass

    @abstractmethod
    def list_escalations(self, status: Optional[str] = None,
                         department: Optional[str] = None) -> List[Escalation]:
        pass

    @abstractmethod
    def count_escalations_with_status(self, status: str) -> int:
        pass

    @abstractmethod
    def get_settings(self) -> Optional[ConfigurationSet]:
        """Return the saved configuration sets, or None on a fresh store."""
        pass

    @abstractmethod
    def save_settings(self, settings: ConfigurationSet) -> None:
        pass

    def get_state_summary(self) -> Dict[str, Any]:
        """Get summary statistics of the stored records."""
        employees = self.list_employees()
        by_status: Dict[str, int] = {}
        for escalation in self.list_escalations():
            by_status[escalation.status] = by_status.get(escalation.status, 0) + 1
        return {
            "total_employees": len(employees),
            "active_employees": sum(1 for e in employees if e.is_active),
            "total_escalations": sum(by_status.values()),
            "escalations_by_status": by_status,
        }


class StateManager(RecordStore):
    """
    In-memory record store with optional JSON file persistence.

    Every read returns a copy, so callers never share mutable state.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        """
        Initialize the state manager.

        Args:
            storage_path: Path to store state as JSON.
                         If None, state is kept in memory only.
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self._lock = threading.RLock()
        self.employees: Dict[str, Employee] = {}
        self.escalations: Dict[str, Escalation] = {}
        self.settings: Optional[ConfigurationSet] = None

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        logger.info(
            f"Initialized StateManager with {'persistent' if self.storage_path else 'in-memory'} storage"
        )

    def find_employee(self, employee_id: str) -> Optional[Tuple[str, Employee]]:
        with self._lock:
            for doc_key, employee in self.employees.items():
                if employee.id == employee_id:
                    return doc_key, employee.model_copy(deep=True)
        return None

    def get_employee_by_email(self, email: str) -> Optional[Employee]:
        with self._lock:
            for employee in self.employees.values():
                if employee.email.lower() == email.lower():
                    return employee.model_copy(deep=True)
        return None

    def list_employees(self) -> List[Employee]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self.employees.values()]

    def save_employee(self, employee: Employee, doc_key: Optional[str] = None) -> str:
        with self._lock:
            key = doc_key or employee.id
            self.employees[key] = employee.model_copy(deep=True)
            self._save_state()
        logger.info(f"Saved employee record {employee.id}")
        return key

    def update_employee(self, doc_key: str, fields: Dict[str, Any]) -> Employee:
        with self._lock:
            existing = self.employees.get(doc_key)
            if existing is None:
                raise KeyError(doc_key)
            updated = existing.model_copy(update=fields, deep=True)
            self.employees[doc_key] = updated
            self._save_state()
        logger.info(f"Updated employee record {updated.id}: {sorted(fields)}")
        return updated.model_copy(deep=True)

    def delete_employee(self, doc_key: str) -> None:
        with self._lock:
            if self.employees.pop(doc_key, None) is None:
                raise KeyError(doc_key)
            self._save_state()
        logger.info(f"Deleted employee document {doc_key}")

    def save_escalation(self, escalation: Escalation) -> None:
        with self._lock:
            self.escalations[escalation.id] = escalation.model_copy(deep=True)
            self._save_state()
        logger.info(f"Saved escalation {escalation.id}")

    def get_escalation(self, escalation_id: str) -> Optional[Escalation]:
        with self._lock:
            escalation = self.escalations.get(escalation_id)
            return escalation.model_copy(deep=True) if escalation else None

    def list_escalations(self, status: Optional[str] = None,
                         department: Optional[str] = None) -> List[Escalation]:
        with self._lock:
            results = [
                e.model_copy(deep=True) for e in self.escalations.values()
                if (status is None or e.status == status)
                and (department is None or e.department == department)
            ]
        return sorted(results, key=lambda e: e.created_at, reverse=True)

    def count_escalations_with_status(self, status: str) -> int:
        with self._lock:
            return sum(1 for e in self.escalations.values() if e.status == status)

    def get_settings(self) -> Optional[ConfigurationSet]:
        with self._lock:
            return self.settings.model_copy(deep=True) if self.settings else None

    def save_settings(self, settings: ConfigurationSet) -> None:
        with self._lock:
            self.settings = settings.model_copy(deep=True)
            self._save_state()
        logger.info("Saved configuration sets")

    def new_document_key(self) -> str:
        """Generate a document key unrelated to the employee id."""
        return uuid.uuid4().hex[:20]

    def _save_state(self):
        """Save current state to persistent storage."""
        if not self.storage_path:
            return

        state_data = {
            "employees": {
                key: e.model_dump(mode="json", by_alias=True) for key, e in self.employees.items()
            },
            "escalations": {
                key: e.model_dump(mode="json", by_alias=True) for key, e in self.escalations.items()
            },
            "settings": self.settings.model_dump(mode="json") if self.settings else None,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

        try:
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(state_data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save state to {self.storage_path}: {e}")
            raise

    def _load_state(self):
        """Load state from persistent storage."""
        if not self.storage_path or not self.storage_path.exists():
            return

        with open(self.storage_path, encoding="utf-8") as f:
            state_data = json.load(f)

        self.employees = {
            key: Employee.model_validate(data)
            for key, data in state_data.get("employees", {}).items()
        }
        self.escalations = {
            key: Escalation.model_validate(data)
            for key, data in state_data.get("escalations", {}).items()
        }
        if state_data.get("settings"):
            self.settings = ConfigurationSet.model_validate(state_data["settings"])

        logger.info(
            f"Loaded {len(self.employees)} employees and {len(self.escalations)} escalations "
            f"from {self.storage_path}"
        )
