"""
Schémas Pydantic pour la sauvegarde / restauration JSON de toute la base.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from mytpq.schemas.attendance import AttendanceRecord
from mytpq.schemas.common import CAMEL_CONFIG, from_epoch_millis
from mytpq.schemas.student import StudentRecord


class ExportData(BaseModel):
    """Document d'export : { students, attendances, exportTimestamp }."""
    students: List[StudentRecord]
    attendances: List[AttendanceRecord]
    export_timestamp: datetime = Field(default_factory=datetime.now)

    model_config = CAMEL_CONFIG

    @field_validator("export_timestamp", mode="before")
    @classmethod
    def exported_from_millis(cls, v):
        return from_epoch_millis(v)


class ImportRowError(BaseModel):
    """Détail d'une ligne rejetée lors de l'import."""
    collection: str            # students, attendances ou document
    index: int                 # position dans la liste (-1 pour le document)
    key: Optional[str] = None  # studentCode ou studentCode@date si lisible
    reason: str


class CollectionCounts(BaseModel):
    new: int = 0
    updated: int = 0


class ImportReport(BaseModel):
    """Rapport retourné après un import JSON."""
    students: CollectionCounts = Field(default_factory=CollectionCounts)
    attendances: CollectionCounts = Field(default_factory=CollectionCounts)
    errors: List[ImportRowError] = []

    def summary(self) -> str:
        """Message affiché à l'utilisateur en fin d'import."""
        if any(e.collection == "document" for e in self.errors):
            return f"Gagal mengimpor data: {self.errors[0].reason}"

        lines = [
            "Data berhasil diimpor!",
            "",
            f"Siswa: {self.students.new} baru, {self.students.updated} diperbarui",
            f"Kehadiran: {self.attendances.new} baru, {self.attendances.updated} diperbarui",
        ]
        if self.errors:
            lines.append(f"Baris ditolak: {len(self.errors)}")
        return "\n".join(lines)
