"""
Modèle SQLAlchemy pour la table students.
Schéma v6 : student_code est l'unique clé primaire (l'ancien id entier a disparu).
"""

from sqlalchemy import Column, Date, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from mytpq.database import Base


class Student(Base):
    __tablename__ = "students"

    student_code = Column(String(32), primary_key=True)  # yyMMddHHmmss ou STU{ancien id}
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    gender = Column(String(10), nullable=True)              # Laki-laki, Perempuan
    birth_date = Column(Date, nullable=True)

    # Position de lecture courante (copie de la dernière présence)
    position_type = Column(String(10), nullable=True)       # Iqro, Quran
    iqro_number = Column(Integer, nullable=True)            # 0 = Pra-TK, 1..6
    iqro_page = Column(Integer, nullable=True)
    quran_surah = Column(Integer, nullable=True)            # 1..114
    quran_ayat = Column(Integer, nullable=True)

    attendances = relationship(
        "Attendance",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
