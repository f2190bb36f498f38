"""
Schémas Pydantic pour les présences journalières.
Note : datetime est importé en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from mytpq.schemas.common import (
    CAMEL_CONFIG,
    ReadingFields,
    as_day,
    from_epoch_millis,
    has_iqro_position,
    has_quran_position,
)


class AttendanceSubmit(ReadingFields):
    """Saisie d'une présence par l'enseignant pour un élève et un jour."""
    student_code: str
    date: dt.date
    is_present: bool
    is_passed: Optional[bool] = None      # True = Lulus, False = Mengulang
    teacher_note: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def truncate_to_day(cls, v):
        return as_day(v)

    @field_validator("teacher_note")
    @classmethod
    def strip_note(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def single_reading_track(self):
        if has_quran_position(self.quran_surah, self.quran_ayat) and has_iqro_position(self.iqro_number, self.iqro_page):
            raise ValueError("Une présence porte soit une position Iqro, soit une position Quran, pas les deux.")
        return self


class AttendanceRecord(ReadingFields):
    """Présence complète, telle qu'exportée / importée."""
    student_code: str
    date: dt.date
    is_present: bool
    created_at: datetime
    is_passed: Optional[bool] = None
    teacher_note: Optional[str] = Field(default=None, alias="catatanGuru")

    model_config = CAMEL_CONFIG

    @field_validator("student_code")
    @classmethod
    def code_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le code élève ne peut pas être vide.")
        return v.strip()

    @field_validator("date", mode="before")
    @classmethod
    def truncate_to_day(cls, v):
        return as_day(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def created_from_millis(cls, v):
        return from_epoch_millis(v)


class AttendanceResponse(BaseModel):
    """Présence telle que renvoyée par le service."""
    student_code: str
    date: dt.date
    is_present: bool
    created_at: datetime
    iqro_number: Optional[int] = None
    iqro_page: Optional[int] = None
    quran_surah: Optional[int] = None
    quran_ayat: Optional[int] = None
    is_passed: Optional[bool] = None
    teacher_note: Optional[str] = None

    model_config = {"from_attributes": True}


class AttendanceStats(BaseModel):
    """Statistiques d'une journée : Total / Hadir / Absen."""
    date: dt.date
    total_students: int
    present_count: int
    absent_count: int
