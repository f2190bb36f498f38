"""
Schémas Pydantic pour les élèves (santri).
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from mytpq.schemas.common import CAMEL_CONFIG, Gender, PositionType, ReadingFields, as_day, from_epoch_millis


def _blank_to_none(v):
    # L'application d'origine enregistrait "" quand le champ n'était pas choisi
    if isinstance(v, str) and not v.strip():
        return None
    return v


class StudentCreate(ReadingFields):
    """
    Formulaire ajout / modification d'un élève.
    Seule la paire de lecture désignée par position_type est conservée.
    """
    name: str
    gender: Optional[Gender] = None
    birth_date: Optional[date] = None
    position_type: Optional[PositionType] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip()

    @field_validator("gender", "position_type", mode="before")
    @classmethod
    def empty_choice(cls, v):
        return _blank_to_none(v)

    @field_validator("birth_date", mode="before")
    @classmethod
    def birth_day(cls, v):
        return as_day(v)

    @model_validator(mode="after")
    def keep_active_pair_only(self):
        if self.position_type == PositionType.IQRO:
            self.quran_surah = None
            self.quran_ayat = None
            # Valeurs par défaut du formulaire : jilid 1, halaman 1
            if self.iqro_number is None:
                self.iqro_number = 1
            if self.iqro_page is None:
                self.iqro_page = 1
        elif self.position_type == PositionType.QURAN:
            self.iqro_number = None
            self.iqro_page = None
            # Valeurs par défaut du formulaire : Al-Fatihah, ayat 1
            if self.quran_surah is None:
                self.quran_surah = 1
            if self.quran_ayat is None:
                self.quran_ayat = 1
        return self


class StudentRecord(ReadingFields):
    """
    Élève complet, tel qu'exporté / importé et tel que passé à upsert_student.
    Aucune normalisation : les données historiques sont conservées telles quelles.
    """
    student_code: str
    name: str
    created_at: datetime
    gender: Optional[Gender] = None
    birth_date: Optional[date] = None
    position_type: Optional[PositionType] = None

    model_config = CAMEL_CONFIG

    @field_validator("student_code", "name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        return v.strip()

    @field_validator("gender", "position_type", mode="before")
    @classmethod
    def empty_choice(cls, v):
        return _blank_to_none(v)

    @field_validator("birth_date", mode="before")
    @classmethod
    def birth_day(cls, v):
        return as_day(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def created_from_millis(cls, v):
        return from_epoch_millis(v)


class StudentResponse(BaseModel):
    """Élève tel que renvoyé par le service (lecture seule, sans revalidation)."""
    student_code: str
    name: str
    created_at: datetime
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    position_type: Optional[str] = None
    iqro_number: Optional[int] = None
    iqro_page: Optional[int] = None
    quran_surah: Optional[int] = None
    quran_ayat: Optional[int] = None

    model_config = {"from_attributes": True}
