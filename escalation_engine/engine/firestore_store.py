"""
Firestore record store for the Escalation Engine.

Documents are written in the camelCase shape the web UI reads. Employee
documents may carry a key that differs from the employee id, so lookups
by id query the stored ``id`` field.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .state_manager import RecordStore
from ..models import ConfigurationSet, Employee, Escalation

logger = logging.getLogger(__name__)

EMPLOYEES = "employees"
ESCALATIONS = "escalations"
SETTINGS = "settings"
SETTINGS_DOC = "configuration"


def _employee_field(name: str) -> str:
    field = Employee.model_fields[name]
    return field.alias or name


class FirestoreRecordStore(RecordStore):
    """Record store backed by Cloud Firestore."""

    def __init__(self, app=None, client=None):
        """
        Args:
            app: Initialized firebase_admin App
            client: Firestore client, used instead of ``app`` when given
        """
        self.db = client or firestore.client(app)
        logger.info("Initialized FirestoreRecordStore")

    def find_employee(self, employee_id: str) -> Optional[Tuple[str, Employee]]:
        query = self.db.collection(EMPLOYEES).where(filter=FieldFilter("id", "==", employee_id)).limit(1)
        for doc in query.stream():
            return doc.id, Employee.model_validate(doc.to_dict())
        return None

    def get_employee_by_email(self, email: str) -> Optional[Employee]:
        query = self.db.collection(EMPLOYEES).where(filter=FieldFilter("email", "==", email)).limit(1)
        for doc in query.stream():
            return Employee.model_validate(doc.to_dict())
        return None

    def list_employees(self) -> List[Employee]:
        employees = []
        for doc in self.db.collection(EMPLOYEES).stream():
            try:
                employees.append(Employee.model_validate(doc.to_dict()))
            except ValueError as e:
                logger.warning(f"Skipping malformed employee document {doc.id}: {e}")
        return employees

    def save_employee(self, employee: Employee, doc_key: Optional[str] = None) -> str:
        key = doc_key or employee.id
        data = employee.model_dump(by_alias=True)
        self.db.collection(EMPLOYEES).document(key).set(data, merge=True)
        logger.info(f"Saved employee record {employee.id}")
        return key

    def update_employee(self, doc_key: str, fields: Dict[str, Any]) -> Employee:
        ref = self.db.collection(EMPLOYEES).document(doc_key)
        ref.update({_employee_field(name): value for name, value in fields.items()})
        snapshot = ref.get()
        logger.info(f"Updated employee document {doc_key}: {sorted(fields)}")
        return Employee.model_validate(snapshot.to_dict())

    def delete_employee(self, doc_key: str) -> None:
        self.db.collection(EMPLOYEES).document(doc_key).delete()
        logger.info(f"Deleted employee document {doc_key}")

    def save_escalation(self, escalation: Escalation) -> None:
        data = escalation.model_dump(by_alias=True)
        self.db.collection(ESCALATIONS).document(escalation.id).set(data)
        logger.info(f"Saved escalation {escalation.id}")

    def get_escalation(self, escalation_id: str) -> Optional[Escalation]:
        snapshot = self.db.collection(ESCALATIONS).document(escalation_id).get()
        if not snapshot.exists:
            return None
        return Escalation.model_validate(snapshot.to_dict())

    def list_escalations(self, status: Optional[str] = None,
                         department: Optional[str] = None) -> List[Escalation]:
        query = self.db.collection(ESCALATIONS)
        if status:
            query = query.where(filter=FieldFilter("status", "==", status))
        if department:
            query = query.where(filter=FieldFilter("department", "==", department))
        escalations = [Escalation.model_validate(doc.to_dict()) for doc in query.stream()]
        return sorted(escalations, key=lambda e: e.created_at, reverse=True)

    def count_escalations_with_status(self, status: str) -> int:
        query = self.db.collection(ESCALATIONS).where(filter=FieldFilter("status", "==", status))
        result = query.count().get()
        return int(result[0][0].value)

    def get_settings(self) -> Optional[ConfigurationSet]:
        snapshot = self.db.collection(SETTINGS).document(SETTINGS_DOC).get()
        if not snapshot.exists:
            return None
        return ConfigurationSet.model_validate(snapshot.to_dict())

    def save_settings(self, settings: ConfigurationSet) -> None:
        self.db.collection(SETTINGS).document(SETTINGS_DOC).set(settings.model_dump())
        logger.info("Saved configuration sets")
