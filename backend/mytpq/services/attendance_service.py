"""
Service métier pour les présences journalières.

Une seule ligne par (élève, jour) : toute saisie remplace la précédente.
Une présence (is_present=True) avec une position de lecture valide est recopiée
sur la fiche de l'élève, dans la même transaction que la présence elle-même.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mytpq.exceptions import NotFoundError
from mytpq.models.attendance import Attendance
from mytpq.models.student import Student
from mytpq.schemas.attendance import AttendanceResponse, AttendanceStats, AttendanceSubmit
from mytpq.schemas.common import PositionType, UpsertOutcome, has_iqro_position, has_quran_position

logger = logging.getLogger(__name__)


def get_attendance(db: Session, student_code: str, day: date) -> AttendanceResponse:
    """Présence d'un élève pour un jour. Lève NotFoundError si absente."""
    attendance = db.get(Attendance, (student_code, day))
    if attendance is None:
        raise NotFoundError(f"Aucune présence pour {student_code} le {day.isoformat()}")
    return AttendanceResponse.model_validate(attendance)


def get_attendance_range(db: Session, student_code: str, start: date, end: date) -> list[AttendanceResponse]:
    """Présences d'un élève entre start et end inclus, de la plus ancienne à la plus récente."""
    rows = db.execute(
        select(Attendance)
        .where(
            Attendance.student_code == student_code,
            Attendance.date >= start,
            Attendance.date <= end,
        )
        .order_by(Attendance.date)
    ).scalars().all()
    return [AttendanceResponse.model_validate(r) for r in rows]


def get_attendance_by_date(db: Session, day: date) -> list[AttendanceResponse]:
    """Toutes les présences saisies pour un jour."""
    rows = db.execute(
        select(Attendance).where(Attendance.date == day).order_by(Attendance.student_code)
    ).scalars().all()
    return [AttendanceResponse.model_validate(r) for r in rows]


def upsert_attendance(db: Session, data: AttendanceSubmit) -> UpsertOutcome:
    """
    Enregistre la présence (remplacement si la clé existe déjà).

    Si l'élève est présent et que la saisie porte une position valide,
    la fiche élève reçoit cette position. Les deux écritures partagent un seul
    commit : la copie ne peut pas exister sans la présence, ni l'inverse.
    Lève NotFoundError si l'élève n'existe pas.
    """
    student = db.get(Student, data.student_code)
    if student is None:
        raise NotFoundError(f"Élève introuvable : {data.student_code}")

    existing = db.get(Attendance, (data.student_code, data.date))
    attendance = existing or Attendance(student_code=data.student_code, date=data.date)
    attendance.is_present = data.is_present
    attendance.iqro_number = data.iqro_number
    attendance.iqro_page = data.iqro_page
    attendance.quran_surah = data.quran_surah
    attendance.quran_ayat = data.quran_ayat
    attendance.is_passed = data.is_passed
    attendance.teacher_note = data.teacher_note
    if existing is None:
        db.add(attendance)

    if data.is_present:
        _copy_position_forward(student, data)

    db.commit()
    return UpsertOutcome.CREATED if existing is None else UpsertOutcome.REPLACED


def _copy_position_forward(student: Student, data: AttendanceSubmit) -> None:
    """La fiche élève garde la dernière position lue ; la paire inactive est vidée."""
    if has_quran_position(data.quran_surah, data.quran_ayat):
        student.position_type = PositionType.QURAN.value
        student.quran_surah = data.quran_surah
        student.quran_ayat = data.quran_ayat
        student.iqro_number = None
        student.iqro_page = None
    elif has_iqro_position(data.iqro_number, data.iqro_page):
        student.position_type = PositionType.IQRO.value
        student.iqro_number = data.iqro_number
        student.iqro_page = data.iqro_page
        student.quran_surah = None
        student.quran_ayat = None
    else:
        return
    logger.debug("Position recopiée sur l'élève %s (%s)", student.student_code, student.position_type)


def toggle_attendance(db: Session, student_code: str, day: date) -> bool:
    """
    Bascule hadir / absen pour un jour (absent si aucune ligne).
    La saisie remplace la ligne : l'éventuel détail de lecture est effacé.
    Retourne le nouvel état.
    """
    current = db.get(Attendance, (student_code, day))
    is_present = not (current.is_present if current is not None else False)
    upsert_attendance(db, AttendanceSubmit(student_code=student_code, date=day, is_present=is_present))
    return is_present


def mark_absent_for_unmarked(db: Session, day: date) -> int:
    """
    Jour de séance : crée une ligne "absent" pour chaque élève sans saisie ce jour-là.
    Retourne le nombre de lignes créées.
    """
    marked = select(Attendance.student_code).where(Attendance.date == day)
    missing = db.execute(
        select(Student.student_code).where(Student.student_code.not_in(marked))
    ).scalars().all()

    for code in missing:
        db.add(Attendance(student_code=code, date=day, is_present=False))
    db.commit()

    logger.info("Séance du %s : %d élève(s) marqué(s) absent(s)", day.isoformat(), len(missing))
    return len(missing)


def get_daily_stats(db: Session, day: date) -> AttendanceStats:
    """Total des élèves, présents et absents pour un jour."""
    total = db.execute(select(func.count()).select_from(Student)).scalar() or 0
    present = db.execute(
        select(func.count())
        .select_from(Attendance)
        .where(Attendance.date == day, Attendance.is_present.is_(True))
    ).scalar() or 0
    return AttendanceStats(date=day, total_students=total, present_count=present, absent_count=total - present)


def count_present_in_range(db: Session, student_code: str, start: date, end: date) -> int:
    return _count_in_range(db, student_code, start, end, Attendance.is_present.is_(True))


def count_passed_in_range(db: Session, student_code: str, start: date, end: date) -> int:
    return _count_in_range(db, student_code, start, end, Attendance.is_passed.is_(True))


def count_retake_in_range(db: Session, student_code: str, start: date, end: date) -> int:
    return _count_in_range(db, student_code, start, end, Attendance.is_passed.is_(False))


def _count_in_range(db: Session, student_code: str, start: date, end: date, condition) -> int:
    return db.execute(
        select(func.count())
        .select_from(Attendance)
        .where(
            Attendance.student_code == student_code,
            Attendance.date >= start,
            Attendance.date <= end,
            condition,
        )
    ).scalar() or 0


def last_attendance_for(db: Session, student_code: str) -> AttendanceResponse:
    """Présence la plus récente de l'élève. Lève NotFoundError s'il n'en a aucune."""
    attendance: Optional[Attendance] = db.execute(
        select(Attendance)
        .where(Attendance.student_code == student_code)
        .order_by(Attendance.date.desc())
        .limit(1)
    ).scalar()
    if attendance is None:
        raise NotFoundError(f"Aucune présence pour {student_code}")
    return AttendanceResponse.model_validate(attendance)
