"""
Modèle SQLAlchemy pour les présences journalières.

Une seule ligne par (student_code, date) : la date est un jour calendaire.
La ligne porte aussi l'instantané de lecture du jour (Iqro ou Quran),
le verdict de l'enseignant et sa note libre.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from mytpq.database import Base


class Attendance(Base):
    __tablename__ = "attendance"

    student_code = Column(
        String(32),
        ForeignKey("students.student_code", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    date = Column(Date, primary_key=True)
    is_present = Column(Boolean, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    iqro_number = Column(Integer, nullable=True)
    iqro_page = Column(Integer, nullable=True)
    quran_surah = Column(Integer, nullable=True)
    quran_ayat = Column(Integer, nullable=True)

    is_passed = Column(Boolean, nullable=True)   # True = Lulus, False = Mengulang, None = non évalué
    teacher_note = Column(Text, nullable=True)   # catatanGuru

    student = relationship("Student", back_populates="attendances")
