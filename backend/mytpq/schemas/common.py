"""
Types partagés par les schémas élèves et présences :
énumérations, champs de position de lecture et résultat d'upsert.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mytpq.quran import SURAH_COUNT, verse_count

IQRO_MIN_LEVEL = 0  # Pra-TK
IQRO_MAX_LEVEL = 6


class Gender(str, Enum):
    MALE = "Laki-laki"
    FEMALE = "Perempuan"


class PositionType(str, Enum):
    IQRO = "Iqro"
    QURAN = "Quran"


class UpsertOutcome(str, Enum):
    """Un upsert ne rejette jamais un doublon : il crée ou remplace."""
    CREATED = "created"
    REPLACED = "replaced"


def from_epoch_millis(v):
    """
    Les exports de l'application mobile datent en millisecondes epoch (minuit local).
    On les ramène à un datetime local naïf ; toute autre valeur passe telle quelle.
    """
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return datetime.fromtimestamp(v / 1000)
    return v


def as_day(v):
    """Valeur au jour près : millisecondes epoch ou datetime, l'heure est tronquée."""
    v = from_epoch_millis(v)
    if isinstance(v, datetime):
        return v.date()
    return v


def has_quran_position(surah: Optional[int], ayat: Optional[int]) -> bool:
    return surah is not None and surah >= 1 and ayat is not None and ayat >= 1


def has_iqro_position(number: Optional[int], page: Optional[int]) -> bool:
    return number is not None and number >= IQRO_MIN_LEVEL and page is not None and page >= 1


class ReadingFields(BaseModel):
    """Paire Iqro (jilid, halaman) et paire Quran (surah, ayat), toutes optionnelles."""

    iqro_number: Optional[int] = None
    iqro_page: Optional[int] = None
    quran_surah: Optional[int] = None
    quran_ayat: Optional[int] = None

    @field_validator("iqro_number")
    @classmethod
    def iqro_level_in_range(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not IQRO_MIN_LEVEL <= v <= IQRO_MAX_LEVEL:
            raise ValueError(f"Le jilid Iqro doit être compris entre {IQRO_MIN_LEVEL} et {IQRO_MAX_LEVEL}.")
        return v

    @field_validator("iqro_page", "quran_ayat")
    @classmethod
    def positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("La valeur doit être supérieure ou égale à 1.")
        return v

    @field_validator("quran_surah")
    @classmethod
    def surah_in_range(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= SURAH_COUNT:
            raise ValueError(f"La sourate doit être comprise entre 1 et {SURAH_COUNT}.")
        return v

    @model_validator(mode="after")
    def ayat_within_surah(self):
        if self.quran_surah is not None and self.quran_ayat is not None:
            limit = verse_count(self.quran_surah)
            if self.quran_ayat > limit:
                raise ValueError(
                    f"La sourate {self.quran_surah} ne compte que {limit} ayat "
                    f"(reçu : {self.quran_ayat})."
                )
        return self


# Format d'échange JSON : attributs snake_case, clés camelCase
CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)
