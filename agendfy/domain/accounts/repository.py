"""Account repository - Firestore operations for account, service and appointment documents"""

from datetime import datetime
from typing import Optional

from google.api_core.exceptions import AlreadyExists

from ...database import APPOINTMENTS_COLLECTION, SERVICES_COLLECTION, USERS_COLLECTION
from ...models import Appointment, ProfessionalAccount, Service, UserRole


class AccountRepository:
    """
    Single-document access to `users/{uid}`.

    Writes are merge-writes (or dotted-path updates) so each caller only
    touches the fields it owns and never reverts a concurrent writer.
    """

    def __init__(self, db):
        self.db = db

    def _ref(self, professional_id: str):
        return self.db.collection(USERS_COLLECTION).document(professional_id)

    def get(self, professional_id: str) -> Optional[ProfessionalAccount]:
        snapshot = self._ref(professional_id).get()
        if not snapshot.exists:
            return None
        return ProfessionalAccount.from_document(snapshot.id, snapshot.to_dict())

    def set(self, professional_id: str, fields: dict, merge: bool = True) -> None:
        self._ref(professional_id).set(fields, merge=merge)

    def update_fields(self, professional_id: str, fields: dict) -> None:
        """Dotted-path update; fails if the document does not exist"""
        self._ref(professional_id).update(fields)

    def create(self, professional_id: str, fields: dict) -> bool:
        """Create the document; returns False when it already exists"""
        try:
            self._ref(professional_id).create(fields)
        except AlreadyExists:
            return False
        return True

    def find_by_email(self, email: str) -> Optional[ProfessionalAccount]:
        query = self.db.collection(USERS_COLLECTION).where("email", "==", email).limit(1)
        for snapshot in query.stream():
            return ProfessionalAccount.from_document(snapshot.id, snapshot.to_dict())
        return None

    def list_professionals(self) -> list[ProfessionalAccount]:
        query = self.db.collection(USERS_COLLECTION).where("role", "==", UserRole.PROFESSIONAL.value)
        return [
            ProfessionalAccount.from_document(snapshot.id, snapshot.to_dict())
            for snapshot in query.stream()
        ]


class ServiceRepository:
    def __init__(self, db):
        self.db = db

    def list_by_professional(self, professional_id: str) -> list[Service]:
        query = self.db.collection(SERVICES_COLLECTION).where("professionalId", "==", professional_id)
        return [Service.from_document(snapshot.id, snapshot.to_dict()) for snapshot in query.stream()]

    def set_status(self, service_id: str, status: str, updated_at: datetime) -> None:
        self.db.collection(SERVICES_COLLECTION).document(service_id).update(
            {"status": status, "updatedAt": updated_at}
        )


class AppointmentRepository:
    def __init__(self, db):
        self.db = db

    def list_by_professional(self, professional_id: str) -> list[Appointment]:
        query = self.db.collection(APPOINTMENTS_COLLECTION).where("professionalId", "==", professional_id)
        return [Appointment.from_document(snapshot.id, snapshot.to_dict()) for snapshot in query.stream()]

    def count_between(self, professional_id: str, start: datetime, end: datetime) -> int:
        query = (
            self.db.collection(APPOINTMENTS_COLLECTION)
            .where("professionalId", "==", professional_id)
            .where("date", ">=", start)
            .where("date", "<=", end)
        )
        return sum(1 for _ in query.stream())
