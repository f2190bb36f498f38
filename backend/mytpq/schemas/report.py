"""
Schémas Pydantic du rapport de progression sur 30 jours.
Note : datetime est importé en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

STATUS_PASSED = "Lulus"
STATUS_RETAKE = "Mengulang"
NO_DATA = "-"


class DailyReport(BaseModel):
    """Une carte "Laporan Harian" : un jour de présence."""
    date: dt.date
    reading: str
    status: str      # Lulus, Mengulang ou "-"
    note: str = ""


class StudentReport(BaseModel):
    """Résumé de la fenêtre [window_start, window_end], bornes incluses."""
    student_code: str
    name: str
    level: str                        # position_type de l'élève, ou "-"
    gender: Optional[str] = None
    birth_date: Optional[dt.date] = None
    position_summary_label: str       # "Al Quran", "Iqro" ou "-"
    attendance_count: int
    start_reading: str
    current_reading: str
    reading_summary: str
    total_passed: int
    total_retake: int
    daily_reports: List[DailyReport]
    window_start: dt.date
    window_end: dt.date
    generated_at: dt.datetime


class RenderedDocument(BaseModel):
    """Document PDF prêt à être enregistré ou partagé."""
    content: bytes
    page_count: int
    media_type: str = "application/pdf"
