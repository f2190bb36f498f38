"""
Service métier pour les élèves : ajout, modification, upsert, suppression en cascade.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from mytpq.exceptions import NotFoundError
from mytpq.models.attendance import Attendance
from mytpq.models.student import Student
from mytpq.schemas.common import UpsertOutcome
from mytpq.schemas.student import StudentCreate, StudentRecord, StudentResponse

logger = logging.getLogger(__name__)

STUDENT_CODE_FORMAT = "%y%m%d%H%M%S"


def generate_student_code(db: Session, now: Optional[datetime] = None) -> str:
    """
    Code yyMMddHHmmss dérivé de l'horodatage.
    Si le code est pris (deux ajouts dans la même seconde), on avance d'une seconde.
    """
    moment = now or datetime.now()
    code = moment.strftime(STUDENT_CODE_FORMAT)
    while db.get(Student, code) is not None:
        moment += timedelta(seconds=1)
        code = moment.strftime(STUDENT_CODE_FORMAT)
    return code


def create_student(db: Session, data: StudentCreate, now: Optional[datetime] = None) -> StudentResponse:
    """Ajoute un élève ; le code et created_at sont fixés ici, une seule fois."""
    moment = now or datetime.now()
    student = Student(
        student_code=generate_student_code(db, moment),
        created_at=moment,
        **data.model_dump(),
    )
    db.add(student)
    db.commit()
    logger.info("Élève créé : %s (%s)", student.name, student.student_code)
    return StudentResponse.model_validate(student)


def get_student(db: Session, student_code: str) -> StudentResponse:
    """Retourne un élève par son code. Lève NotFoundError s'il n'existe pas."""
    return StudentResponse.model_validate(_get_or_raise(db, student_code))


def list_students(db: Session) -> list[StudentResponse]:
    """Retourne tous les élèves triés par nom."""
    students = db.execute(
        select(Student).order_by(Student.name, Student.student_code)
    ).scalars().all()
    return [StudentResponse.model_validate(s) for s in students]


def count_students(db: Session) -> int:
    return db.execute(select(func.count()).select_from(Student)).scalar() or 0


def update_student(db: Session, student_code: str, data: StudentCreate) -> StudentResponse:
    """
    Modification depuis le formulaire : remplace tous les champs éditables.
    Le code et la date de création ne changent pas.
    """
    student = _get_or_raise(db, student_code)
    for field, value in data.model_dump().items():
        setattr(student, field, value)
    db.commit()
    return StudentResponse.model_validate(student)


def upsert_student(db: Session, record: StudentRecord) -> UpsertOutcome:
    """Remplacement complet à la clé student_code : jamais de doublon."""
    existing = db.get(Student, record.student_code)
    db.merge(Student(**record.model_dump()))
    db.commit()
    return UpsertOutcome.CREATED if existing is None else UpsertOutcome.REPLACED


def delete_student(db: Session, student_code: str) -> int:
    """
    Supprime un élève et toutes ses présences dans la même transaction.
    Retourne le nombre de présences supprimées.
    """
    student = _get_or_raise(db, student_code)
    result = db.execute(delete(Attendance).where(Attendance.student_code == student_code))
    db.delete(student)
    db.commit()
    logger.info("Élève supprimé : %s (%d présences supprimées)", student_code, result.rowcount)
    return result.rowcount


def _get_or_raise(db: Session, student_code: str) -> Student:
    student = db.get(Student, student_code)
    if student is None:
        raise NotFoundError(f"Élève introuvable : {student_code}")
    return student
