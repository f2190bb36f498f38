"""
Configuration partagée pour tous les tests.
Chaque test reçoit un Store SQLite en mémoire, déjà migré : aucun fichier n'est créé.
"""

from datetime import date, datetime

import pytest

import mytpq.models  # noqa: F401
from mytpq.database import Store
from mytpq.schemas.attendance import AttendanceSubmit
from mytpq.schemas.student import StudentRecord
from mytpq.services.attendance_service import upsert_attendance
from mytpq.services.student_service import upsert_student


@pytest.fixture
def store():
    """Store en mémoire au schéma courant."""
    s = Store("sqlite://")
    s.migrate()
    yield s
    s.dispose()


@pytest.fixture
def db(store):
    """Session ouverte sur le Store de test."""
    with store.session() as session:
        yield session


# --- Helpers ---

def add_student(db, code="STU1", name="Ali", **fields):
    """Insère un élève complet via upsert_student."""
    record = StudentRecord(
        student_code=code,
        name=name,
        created_at=fields.pop("created_at", datetime(2024, 1, 1, 8, 0, 0)),
        **fields,
    )
    upsert_student(db, record)
    return record


def add_attendance(db, code, day: date, is_present=True, **fields):
    """Saisie d'une présence via upsert_attendance (copie de position comprise)."""
    data = AttendanceSubmit(student_code=code, date=day, is_present=is_present, **fields)
    return upsert_attendance(db, data)
