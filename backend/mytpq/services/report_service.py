"""
Rapport de progression d'un élève sur une fenêtre glissante (30 jours par défaut).

`compute_report` est un calcul pur sur des données déjà chargées ;
`build_student_report` charge l'élève et ses présences puis l'appelle.

Règles de lecture :
- position "de départ" : la plus ancienne présence (hadir) de la fenêtre ;
- position "actuelle" : la dernière présence avec une position Quran valide,
  sinon la dernière avec une position Iqro valide, sinon "-".
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from mytpq.config import settings
from mytpq.quran import surah_name
from mytpq.schemas.attendance import AttendanceResponse
from mytpq.schemas.common import has_iqro_position, has_quran_position
from mytpq.schemas.report import NO_DATA, STATUS_PASSED, STATUS_RETAKE, DailyReport, StudentReport
from mytpq.schemas.student import StudentResponse
from mytpq.services import attendance_service, student_service

logger = logging.getLogger(__name__)

PRE_LEVEL_LABEL = "Pra-TK"


def report_window(today: date, days: Optional[int] = None) -> tuple[date, date]:
    """Fenêtre [today - (days - 1), today], bornes incluses."""
    days = days or settings.REPORT_WINDOW_DAYS
    return today - timedelta(days=days - 1), today


def has_quran_reading(row) -> bool:
    return has_quran_position(row.quran_surah, row.quran_ayat)


def has_iqro_reading(row) -> bool:
    return has_iqro_position(row.iqro_number, row.iqro_page)


def format_reading_position(row) -> str:
    """
    "Surah Al-Baqarah ayat 5", "Iqro 3 Hal 10", "Pra-TK Hal 4" ou "-".
    Une ligne qui porterait les deux paires est lue comme Quran.
    """
    if has_quran_reading(row):
        return f"Surah {surah_name(row.quran_surah)} ayat {row.quran_ayat}"
    if has_iqro_reading(row):
        level = PRE_LEVEL_LABEL if row.iqro_number == 0 else f"Iqro {row.iqro_number}"
        return f"{level} Hal {row.iqro_page}"
    return NO_DATA


def format_status(is_passed: Optional[bool]) -> str:
    if is_passed is True:
        return STATUS_PASSED
    if is_passed is False:
        return STATUS_RETAKE
    return NO_DATA


def select_current_reading(present_rows: Sequence) -> Optional[object]:
    """Dernière ligne Quran valide, sinon dernière ligne Iqro valide, sinon None."""
    last_quran = next((r for r in reversed(present_rows) if has_quran_reading(r)), None)
    if last_quran is not None:
        return last_quran
    return next((r for r in reversed(present_rows) if has_iqro_reading(r)), None)


def compute_report(
    student: StudentResponse,
    rows: Sequence[AttendanceResponse],
    today: date,
    generated_at: datetime,
    days: Optional[int] = None,
) -> StudentReport:
    """Calcule le rapport à partir de l'élève et de ses présences (déjà chargées)."""
    start, end = report_window(today, days)
    in_window = sorted((r for r in rows if start <= r.date <= end), key=lambda r: r.date)
    present = [r for r in in_window if r.is_present]

    first = present[0] if present else None
    current = select_current_reading(present)

    start_reading = format_reading_position(first) if first is not None else NO_DATA
    current_reading = format_reading_position(current) if current is not None else NO_DATA
    if start_reading == current_reading:
        reading_summary = start_reading
    else:
        reading_summary = f"{start_reading} → {current_reading}"

    if current is not None and has_quran_reading(current):
        label = "Al Quran"
    elif current is not None:
        label = "Iqro"
    else:
        label = NO_DATA

    # Laporan harian : jours de présence uniquement, le plus récent en premier
    daily = [
        DailyReport(
            date=r.date,
            reading=format_reading_position(r),
            status=format_status(r.is_passed),
            note=r.teacher_note or "",
        )
        for r in reversed(present)
    ]

    return StudentReport(
        student_code=student.student_code,
        name=student.name,
        level=student.position_type or NO_DATA,
        gender=student.gender,
        birth_date=student.birth_date,
        position_summary_label=label,
        attendance_count=len(present),
        start_reading=start_reading,
        current_reading=current_reading,
        reading_summary=reading_summary,
        total_passed=sum(1 for r in in_window if r.is_passed is True),
        total_retake=sum(1 for r in in_window if r.is_passed is False),
        daily_reports=daily,
        window_start=start,
        window_end=end,
        generated_at=generated_at,
    )


def build_student_report(
    db: Session,
    student_code: str,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> StudentReport:
    """Charge l'élève et ses présences de la fenêtre puis calcule le rapport. Lève NotFoundError."""
    generated_at = now or datetime.now()
    today = today or generated_at.date()

    student = student_service.get_student(db, student_code)
    start, end = report_window(today)
    rows = attendance_service.get_attendance_range(db, student_code, start, end)

    report = compute_report(student, rows, today, generated_at)
    logger.info(
        "Rapport %s du %s au %s : %d présences, %d cartes",
        student_code, start.isoformat(), end.isoformat(), report.attendance_count, len(report.daily_reports),
    )
    return report
