"""
Migrations versionnées du schéma de la base locale.

Historique :
  v1  students(id, name, created_at) / attendance(id, student_id, date, is_present, created_at)
  v2  colonnes démographiques et de lecture sur students
  v3  colonnes de lecture et verdict sur attendance
  v4  note de l'enseignant sur attendance
  v5  student_code (nullable) sur students, à côté de l'id entier
  v6  student_code devient l'unique clé primaire ; attendance reconstruite
      avec la clé composite (student_code, date)

Chaque étape tourne dans sa propre transaction avec la mise à jour du marqueur
de version : une étape échouée ne fait jamais avancer la version.
Les tables des versions passées sont figées ici et ne suivent pas les modèles.
"""

import logging
from typing import Callable, List, NamedTuple, Optional

from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    delete,
    func,
    insert,
    inspect,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from mytpq.exceptions import MigrationError

logger = logging.getLogger(__name__)

BASELINE_VERSION = 1
LATEST_VERSION = 6
LEGACY_CODE_PREFIX = "STU"  # code synthétisé : STU{ancien id}

_MARKER = MetaData()
schema_version = Table(
    "schema_version",
    _MARKER,
    Column("version", Integer, nullable=False),
)

# --- v1 : schéma initial (id entier auto-incrémenté) ---

_V1 = MetaData()
Table(
    "students",
    _V1,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)
Table(
    "attendance",
    _V1,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("student_id", Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
    Column("date", Date, nullable=False),
    Column("is_present", Boolean, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("student_id", "date", name="uq_attendance_student_date"),
)

# --- v5 : forme atteinte après les ALTER des étapes 2 à 5 ---

_V5 = MetaData()
legacy_students = Table(
    "students",
    _V5,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
    Column("created_at", DateTime),
    Column("gender", String(10)),
    Column("birth_date", Date),
    Column("position_type", String(10)),
    Column("iqro_number", Integer),
    Column("iqro_page", Integer),
    Column("quran_surah", Integer),
    Column("quran_ayat", Integer),
    Column("student_code", String(32)),
)
legacy_attendance = Table(
    "attendance",
    _V5,
    Column("id", Integer, primary_key=True),
    Column("student_id", Integer),
    Column("date", Date),
    Column("is_present", Boolean),
    Column("created_at", DateTime),
    Column("iqro_number", Integer),
    Column("iqro_page", Integer),
    Column("quran_surah", Integer),
    Column("quran_ayat", Integer),
    Column("is_passed", Boolean),
    Column("teacher_note", Text),
)

# --- v6 : student_code clé primaire ---

_V6 = MetaData()
students_v6 = Table(
    "students",
    _V6,
    Column("student_code", String(32), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("gender", String(10)),
    Column("birth_date", Date),
    Column("position_type", String(10)),
    Column("iqro_number", Integer),
    Column("iqro_page", Integer),
    Column("quran_surah", Integer),
    Column("quran_ayat", Integer),
)
attendance_v6 = Table(
    "attendance",
    _V6,
    Column(
        "student_code",
        String(32),
        ForeignKey("students.student_code", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
    Column("date", Date, primary_key=True),
    Column("is_present", Boolean, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("iqro_number", Integer),
    Column("iqro_page", Integer),
    Column("quran_surah", Integer),
    Column("quran_ayat", Integer),
    Column("is_passed", Boolean),
    Column("teacher_note", Text),
)

_STUDENT_FIELDS = (
    "name", "created_at", "gender", "birth_date", "position_type",
    "iqro_number", "iqro_page", "quran_surah", "quran_ayat",
)
_ATTENDANCE_FIELDS = (
    "date", "is_present", "created_at", "iqro_number", "iqro_page",
    "quran_surah", "quran_ayat", "is_passed", "teacher_note",
)


class MigrationReport(BaseModel):
    """Bilan d'une montée de version."""
    from_version: int
    to_version: int
    applied: List[int] = []
    created_fresh: bool = False
    synthesized_codes: int = 0
    orphan_attendance_dropped: int = 0


class MigrationStep(NamedTuple):
    version: int                    # version atteinte après l'étape
    description: str
    apply: Callable[[Connection, MigrationReport], None]


# --- Marqueur de version ---

def read_version(conn: Connection) -> Optional[int]:
    """
    Version enregistrée, ou None pour une base vide.
    Une base qui a des tables mais pas de marqueur date d'avant le marqueur : v1.
    """
    inspector = inspect(conn)
    if inspector.has_table("schema_version"):
        return conn.execute(select(schema_version.c.version)).scalar()
    if inspector.has_table("students"):
        return BASELINE_VERSION
    return None


def _write_version(conn: Connection, version: int) -> None:
    schema_version.create(conn, checkfirst=True)
    conn.execute(delete(schema_version))
    conn.execute(insert(schema_version).values(version=version))


def create_baseline_schema(engine: Engine) -> None:
    """Crée le schéma v1 (base d'avant les migrations)."""
    with engine.begin() as conn:
        _V1.create_all(conn)
        _write_version(conn, BASELINE_VERSION)


# --- Étapes ---

def _add_columns(conn: Connection, table: str, columns) -> None:
    """ALTER TABLE ADD COLUMN, en ignorant les colonnes déjà présentes."""
    existing = {c["name"] for c in inspect(conn).get_columns(table)}
    for name, ddl_type in columns:
        if name in existing:
            logger.debug("Colonne %s.%s déjà présente, ignorée", table, name)
            continue
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))


def _add_student_details(conn: Connection, report: MigrationReport) -> None:
    _add_columns(conn, "students", [
        ("gender", "VARCHAR(10)"),
        ("birth_date", "DATE"),
        ("position_type", "VARCHAR(10)"),
        ("iqro_number", "INTEGER"),
        ("iqro_page", "INTEGER"),
        ("quran_surah", "INTEGER"),
        ("quran_ayat", "INTEGER"),
    ])


def _add_attendance_reading(conn: Connection, report: MigrationReport) -> None:
    _add_columns(conn, "attendance", [
        ("iqro_number", "INTEGER"),
        ("iqro_page", "INTEGER"),
        ("quran_surah", "INTEGER"),
        ("quran_ayat", "INTEGER"),
        ("is_passed", "BOOLEAN"),
    ])


def _add_teacher_note(conn: Connection, report: MigrationReport) -> None:
    _add_columns(conn, "attendance", [("teacher_note", "TEXT")])


def _add_student_code(conn: Connection, report: MigrationReport) -> None:
    _add_columns(conn, "students", [("student_code", "VARCHAR(32)")])


def legacy_code(old_id: int) -> str:
    """Code déterministe d'un élève sans code : deux id distincts donnent deux codes distincts."""
    return f"{LEGACY_CODE_PREFIX}{old_id}"


def _promote_student_code(conn: Connection, report: MigrationReport) -> None:
    """
    Fait de student_code l'unique identité des deux tables.

    Les nouvelles lignes sont entièrement construites et vérifiées en mémoire
    avant de toucher aux tables ; le remplacement (DROP, CREATE, INSERT) se fait
    dans la transaction de l'étape.
    """
    # 1. Snapshot
    old_students = conn.execute(select(legacy_students).order_by(legacy_students.c.id)).mappings().all()
    old_attendance = conn.execute(select(legacy_attendance).order_by(legacy_attendance.c.id)).mappings().all()

    # 2. Élèves, clés sur le code
    code_by_id = {}
    used_codes = set()
    new_students = []
    for row in old_students:
        code = (row["student_code"] or "").strip()
        if not code:
            code = legacy_code(row["id"])
            report.synthesized_codes += 1
        if code in used_codes:
            raise MigrationError(f"Code élève en double : {code} (id {row['id']})")
        code_by_id[row["id"]] = code
        used_codes.add(code)
        new_students.append({"student_code": code, **{f: row[f] for f in _STUDENT_FIELDS}})

    # 3. Présences, re-liées via l'ancien id
    new_attendance = []
    seen_keys = set()
    orphans = 0
    for row in old_attendance:
        code = code_by_id.get(row["student_id"])
        if code is None:
            orphans += 1
            continue
        key = (code, row["date"])
        if key in seen_keys:
            raise MigrationError(f"Présence en double : {code} le {row['date']}")
        seen_keys.add(key)
        new_attendance.append({"student_code": code, **{f: row[f] for f in _ATTENDANCE_FIELDS}})

    if len(new_students) != len(old_students) or len(new_attendance) + orphans != len(old_attendance):
        raise MigrationError("Nombre de lignes incohérent après reconstruction.")

    # 4. Remplacement des deux tables
    legacy_attendance.drop(conn)
    legacy_students.drop(conn)
    _V6.create_all(conn)
    if new_students:
        conn.execute(insert(students_v6), new_students)
    if new_attendance:
        conn.execute(insert(attendance_v6), new_attendance)

    installed_students = conn.execute(select(func.count()).select_from(students_v6)).scalar()
    installed_attendance = conn.execute(select(func.count()).select_from(attendance_v6)).scalar()
    if installed_students != len(new_students) or installed_attendance != len(new_attendance):
        raise MigrationError("Les tables installées ne correspondent pas aux lignes préparées.")

    report.orphan_attendance_dropped += orphans
    if orphans:
        logger.warning(
            "Migration v6 : %d présence(s) orpheline(s) sans élève correspondant, ignorée(s)",
            orphans,
        )
    logger.info(
        "Migration v6 : %d élèves (%d codes synthétisés), %d présences re-liées",
        len(new_students), report.synthesized_codes, len(new_attendance),
    )


MIGRATIONS = [
    MigrationStep(2, "colonnes démographiques et de lecture des élèves", _add_student_details),
    MigrationStep(3, "colonnes de lecture des présences", _add_attendance_reading),
    MigrationStep(4, "note de l'enseignant", _add_teacher_note),
    MigrationStep(5, "colonne student_code", _add_student_code),
    MigrationStep(6, "student_code clé primaire", _promote_student_code),
]


# --- Exécution ---

def apply_step(engine: Engine, step: MigrationStep, report: MigrationReport) -> bool:
    """
    Applique une étape dans sa propre transaction.
    Retourne False si la base est déjà à cette version ou au-delà.
    """
    try:
        with engine.begin() as conn:
            current = read_version(conn)
            if current is None:
                raise MigrationError("Base vide : aucune migration à appliquer avant la création du schéma.")
            if current >= step.version:
                logger.debug("Migration v%d déjà appliquée, ignorée", step.version)
                return False
            if current != step.version - 1:
                raise MigrationError(
                    f"Migration v{step.version} impossible depuis la version {current} (ordre non respecté)."
                )
            step.apply(conn, report)
            _write_version(conn, step.version)
    except MigrationError as exc:
        logger.critical("Migration v%d (%s) interrompue : %s", step.version, step.description, exc)
        raise
    except SQLAlchemyError as exc:
        logger.critical("Migration v%d (%s) interrompue : %s", step.version, step.description, exc)
        raise MigrationError(f"Migration v{step.version} ({step.description}) échouée : {exc}") from exc

    report.applied.append(step.version)
    report.to_version = step.version
    logger.info("Migration v%d appliquée : %s", step.version, step.description)
    return True


def upgrade(engine: Engine, steps: Optional[List[MigrationStep]] = None) -> MigrationReport:
    """
    Amène la base à la dernière version.
    Base vide : le schéma courant est créé directement à LATEST_VERSION.
    """
    from mytpq.database import Base
    import mytpq.models  # noqa: F401 (enregistre les tables dans Base.metadata)

    with engine.begin() as conn:
        version = read_version(conn)
        if version is None:
            Base.metadata.create_all(conn)
            _write_version(conn, LATEST_VERSION)
            logger.info("Base créée directement en version %d", LATEST_VERSION)
            return MigrationReport(from_version=0, to_version=LATEST_VERSION, created_fresh=True)

    report = MigrationReport(from_version=version, to_version=version)
    for step in steps if steps is not None else MIGRATIONS:
        apply_step(engine, step, report)
    return report
