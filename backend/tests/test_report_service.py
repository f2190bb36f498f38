"""
Tests unitaires du rapport de progression sur 30 jours.
Couverture : fenêtre glissante, position de départ / actuelle, Pra-TK,
statuts Lulus / Mengulang, sourate hors bornes, laporan harian.
"""

from datetime import date, datetime, timedelta

import pytest

from mytpq.exceptions import NotFoundError
from mytpq.schemas.attendance import AttendanceResponse
from mytpq.schemas.student import StudentResponse
from mytpq.services.report_service import (
    build_student_report,
    compute_report,
    format_reading_position,
    format_status,
    report_window,
    select_current_reading,
)

from conftest import add_attendance, add_student

TODAY = date(2024, 3, 30)
NOW = datetime(2024, 3, 30, 17, 0, 0)


# --- Helpers ---

def make_student(**fields) -> StudentResponse:
    defaults = dict(student_code="STU1", name="Ali", created_at=datetime(2024, 1, 1), position_type="Iqro")
    defaults.update(fields)
    return StudentResponse(**defaults)


def make_row(day: date, is_present=True, **fields) -> AttendanceResponse:
    return AttendanceResponse(
        student_code="STU1",
        date=day,
        is_present=is_present,
        created_at=datetime.combine(day, datetime.min.time()),
        **fields,
    )


# ============================================================
# Fenêtre
# ============================================================

def test_fenetre_trente_jours_incluse():
    start, end = report_window(TODAY, 30)
    assert start == date(2024, 3, 1)
    assert end == TODAY
    assert (end - start).days + 1 == 30


def test_lignes_hors_fenetre_ignorees():
    rows = [
        make_row(date(2024, 2, 29), is_passed=True),   # veille de la fenêtre
        make_row(date(2024, 3, 1), is_passed=True),
        make_row(TODAY, is_passed=False),
        make_row(TODAY + timedelta(days=1), is_passed=True),
    ]

    report = compute_report(make_student(), rows, TODAY, NOW)

    assert report.attendance_count == 2
    assert report.total_passed == 1
    assert report.total_retake == 1
    assert all(report.window_start <= d.date <= report.window_end for d in report.daily_reports)


# ============================================================
# Positions de lecture
# ============================================================

def test_format_positions():
    assert format_reading_position(make_row(TODAY, quran_surah=2, quran_ayat=5)) == "Surah Al-Baqarah ayat 5"
    assert format_reading_position(make_row(TODAY, iqro_number=3, iqro_page=10)) == "Iqro 3 Hal 10"
    assert format_reading_position(make_row(TODAY, iqro_number=0, iqro_page=4)) == "Pra-TK Hal 4"
    assert format_reading_position(make_row(TODAY)) == "-"


def test_valeurs_nulles_ou_zero_non_valides():
    assert format_reading_position(make_row(TODAY, quran_surah=2, quran_ayat=0)) == "-"
    assert format_reading_position(make_row(TODAY, iqro_number=2, iqro_page=0)) == "-"
    assert format_reading_position(make_row(TODAY, iqro_number=2)) == "-"


def test_sourate_hors_bornes():
    """Donnée historique hors des 114 sourates : nom affiché "-", sans erreur."""
    assert format_reading_position(make_row(TODAY, quran_surah=200, quran_ayat=3)) == "Surah - ayat 3"


def test_statuts():
    assert format_status(True) == "Lulus"
    assert format_status(False) == "Mengulang"
    assert format_status(None) == "-"


def test_position_actuelle_priorite_quran():
    rows = [
        make_row(date(2024, 3, 5), quran_surah=1, quran_ayat=7),
        make_row(date(2024, 3, 10), iqro_number=6, iqro_page=2),
    ]
    assert select_current_reading(rows).date == date(2024, 3, 5)


def test_position_actuelle_derniere_iqro():
    rows = [
        make_row(date(2024, 3, 5), iqro_number=2, iqro_page=1),
        make_row(date(2024, 3, 10), iqro_number=2, iqro_page=9),
        make_row(date(2024, 3, 12)),
    ]
    assert select_current_reading(rows).date == date(2024, 3, 10)


def test_position_actuelle_aucune():
    assert select_current_reading([make_row(TODAY)]) is None


# ============================================================
# Rapport complet
# ============================================================

def test_rapport_progression_iqro_vers_quran():
    rows = [
        make_row(date(2024, 3, 2), iqro_number=6, iqro_page=28, is_passed=True),
        make_row(date(2024, 3, 9), is_present=False),
        make_row(date(2024, 3, 16), quran_surah=1, quran_ayat=7, is_passed=False, teacher_note="Ulangi"),
        make_row(date(2024, 3, 23), quran_surah=2, quran_ayat=5, is_passed=True),
    ]

    report = compute_report(make_student(), rows, TODAY, NOW)

    assert report.attendance_count == 3
    assert report.start_reading == "Iqro 6 Hal 28"
    assert report.current_reading == "Surah Al-Baqarah ayat 5"
    assert report.reading_summary == "Iqro 6 Hal 28 → Surah Al-Baqarah ayat 5"
    assert report.position_summary_label == "Al Quran"
    assert report.total_passed == 2
    assert report.total_retake == 1
    assert report.generated_at == NOW


def test_laporan_harian_present_seulement_plus_recent_en_premier():
    rows = [
        make_row(date(2024, 3, 2), iqro_number=0, iqro_page=3),
        make_row(date(2024, 3, 9), is_present=False),
        make_row(date(2024, 3, 16), iqro_number=0, iqro_page=7, is_passed=True, teacher_note="Bagus"),
    ]

    report = compute_report(make_student(), rows, TODAY, NOW)

    assert [d.date for d in report.daily_reports] == [date(2024, 3, 16), date(2024, 3, 2)]
    latest = report.daily_reports[0]
    assert latest.reading == "Pra-TK Hal 7"
    assert latest.status == "Lulus"
    assert latest.note == "Bagus"
    assert report.daily_reports[1].status == "-"
    assert report.position_summary_label == "Iqro"


def test_rapport_sans_presence():
    report = compute_report(make_student(), [make_row(date(2024, 3, 9), is_present=False)], TODAY, NOW)

    assert report.attendance_count == 0
    assert report.start_reading == "-"
    assert report.current_reading == "-"
    assert report.reading_summary == "-"
    assert report.position_summary_label == "-"
    assert report.daily_reports == []


def test_meme_position_resume_unique():
    rows = [make_row(date(2024, 3, 2), iqro_number=3, iqro_page=1)]
    report = compute_report(make_student(), rows, TODAY, NOW)
    assert report.reading_summary == "Iqro 3 Hal 1"


@pytest.mark.parametrize("days", [0, 1, 29, 30])
def test_jour_limite_de_fenetre(days):
    """Aujourd'hui - 29 jours est le premier jour inclus, aujourd'hui - 30 est exclu."""
    row = make_row(TODAY - timedelta(days=days))
    report = compute_report(make_student(), [row], TODAY, NOW)
    assert report.attendance_count == (1 if days <= 29 else 0)


# ============================================================
# Depuis la base
# ============================================================

def test_build_student_report(db):
    add_student(db, "STU1", "Ali", gender="Laki-laki", birth_date=date(2015, 1, 5))
    add_attendance(db, "STU1", date(2024, 2, 1), iqro_number=1, iqro_page=1)
    add_attendance(db, "STU1", date(2024, 3, 10), iqro_number=2, iqro_page=5, is_passed=True)
    add_attendance(db, "STU1", date(2024, 3, 20), iqro_number=2, iqro_page=9, is_passed=False)

    report = build_student_report(db, "STU1", today=TODAY, now=NOW)

    assert report.name == "Ali"
    assert report.gender == "Laki-laki"
    assert report.birth_date == date(2015, 1, 5)
    assert report.level == "Iqro"
    assert report.attendance_count == 2
    assert report.start_reading == "Iqro 2 Hal 5"
    assert report.current_reading == "Iqro 2 Hal 9"
    assert (report.total_passed, report.total_retake) == (1, 1)


def test_build_student_report_eleve_inconnu(db):
    with pytest.raises(NotFoundError):
        build_student_report(db, "INCONNU", today=TODAY, now=NOW)
