"""
Tests des migrations de schéma : v1 → v6, promotion de student_code,
présences orphelines, idempotence et échec atomique.
"""

from datetime import date, datetime

import pytest
from sqlalchemy import func, inspect, insert, select
from sqlalchemy.exc import OperationalError

from mytpq import migrations
from mytpq.database import Store
from mytpq.exceptions import MigrationError
from mytpq.migrations import (
    LATEST_VERSION,
    MIGRATIONS,
    attendance_v6,
    create_baseline_schema,
    legacy_attendance,
    legacy_code,
    legacy_students,
    students_v6,
)
from mytpq.models.attendance import Attendance
from mytpq.models.student import Student


# --- Helpers ---

def make_store_v5():
    """Store au schéma v5 (id entier + student_code nullable), encore vide."""
    store = Store("sqlite://")
    create_baseline_schema(store.engine)
    for step in MIGRATIONS[:4]:
        store.run_migration(step)
    return store


def full_rows(table, defaults, rows):
    """Chaque ligne porte toutes les colonnes : un executemany exige des clés identiques."""
    base = {column.name: None for column in table.columns}
    return [{**base, **defaults, **row} for row in rows]


def insert_students(store, rows):
    with store.engine.begin() as conn:
        conn.execute(
            insert(legacy_students),
            full_rows(legacy_students, {"created_at": datetime(2023, 7, 1, 9, 0, 0)}, rows),
        )


def insert_attendance(store, rows):
    with store.engine.begin() as conn:
        conn.execute(
            insert(legacy_attendance),
            full_rows(legacy_attendance, {"is_present": True, "created_at": datetime(2024, 3, 1, 8, 0, 0)}, rows),
        )


def insert_orphan_attendance(store, student_id, day):
    """Présence pointant vers un élève absent : clés étrangères coupées le temps de l'insertion."""
    raw = store.engine.raw_connection()
    try:
        cursor = raw.cursor()
        cursor.execute("PRAGMA foreign_keys=OFF")
        cursor.execute(
            "INSERT INTO attendance (student_id, date, is_present, created_at) VALUES (?, ?, 1, ?)",
            (student_id, day.isoformat(), "2024-03-01 08:00:00.000000"),
        )
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    finally:
        raw.close()


def count(store, table):
    with store.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar()


# ============================================================
# Base neuve
# ============================================================

def test_base_vide_creee_en_derniere_version():
    store = Store("sqlite://")
    report = store.migrate()

    assert report.created_fresh is True
    assert report.to_version == LATEST_VERSION
    assert store.current_schema_version() == LATEST_VERSION
    store.dispose()


def test_migrate_deux_fois_ne_fait_rien(store):
    report = store.migrate()

    assert report.applied == []
    assert report.from_version == report.to_version == LATEST_VERSION


def test_base_sans_marqueur_consideree_v1():
    """Base d'avant le marqueur de version : tables v1 présentes, pas de schema_version."""
    store = Store("sqlite://")
    with store.engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE students (id INTEGER PRIMARY KEY AUTOINCREMENT, name VARCHAR(100) NOT NULL, "
            "created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP)"
        )
        conn.exec_driver_sql(
            "CREATE TABLE attendance (id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE, "
            "date DATE NOT NULL, is_present BOOLEAN NOT NULL, "
            "created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP, UNIQUE (student_id, date))"
        )
        conn.exec_driver_sql("INSERT INTO students (id, name) VALUES (7, 'Ali')")

    assert store.current_schema_version() == 1
    report = store.migrate()

    assert report.applied == [2, 3, 4, 5, 6]
    with store.session() as db:
        assert db.get(Student, "STU7").name == "Ali"
    store.dispose()


# ============================================================
# Étapes 2 à 5
# ============================================================

def test_etapes_ajoutent_les_colonnes():
    store = make_store_v5()

    columns = {c["name"] for c in inspect(store.engine).get_columns("students")}
    assert {"gender", "birth_date", "position_type", "iqro_number", "quran_surah", "student_code"} <= columns
    columns = {c["name"] for c in inspect(store.engine).get_columns("attendance")}
    assert {"iqro_page", "quran_ayat", "is_passed", "teacher_note"} <= columns
    assert store.current_schema_version() == 5
    store.dispose()


def test_etape_deja_appliquee_ignoree():
    store = make_store_v5()

    report = store.run_migration(MIGRATIONS[0])

    assert report.applied == []
    assert store.current_schema_version() == 5
    store.dispose()


# ============================================================
# v6 : promotion de student_code
# ============================================================

def test_promotion_conserve_toutes_les_lignes():
    store = make_store_v5()
    insert_students(store, [
        {"id": 1, "name": "Ali", "student_code": "240101080000", "position_type": "Iqro", "iqro_number": 2, "iqro_page": 5},
        {"id": 2, "name": "Budi"},
    ])
    insert_attendance(store, [
        {"id": 1, "student_id": 1, "date": date(2024, 3, 1), "iqro_number": 2, "iqro_page": 5, "is_passed": True},
        {"id": 2, "student_id": 2, "date": date(2024, 3, 1), "is_present": False},
        {"id": 3, "student_id": 2, "date": date(2024, 3, 2), "teacher_note": "Lancar"},
    ])

    report = store.migrate()

    assert report.applied == [6]
    assert report.synthesized_codes == 1
    assert report.orphan_attendance_dropped == 0
    assert count(store, students_v6) == 2
    assert count(store, attendance_v6) == 3

    with store.session() as db:
        ali = db.get(Student, "240101080000")
        assert ali.iqro_number == 2
        budi = db.get(Student, legacy_code(2))
        assert budi.name == "Budi"
        note = db.get(Attendance, (legacy_code(2), date(2024, 3, 2)))
        assert note.teacher_note == "Lancar"
        assert db.get(Attendance, ("240101080000", date(2024, 3, 1))).is_passed is True
    store.dispose()


def test_codes_synthetises_distincts():
    assert legacy_code(1) != legacy_code(11)
    assert legacy_code(12) == "STU12"


def test_chaque_presence_suit_son_eleve():
    """Chaque présence migrée référence le code de l'élève qui portait son ancien id."""
    store = make_store_v5()
    insert_students(store, [{"id": i, "name": f"Siswa {i}"} for i in range(1, 6)])
    insert_attendance(store, [
        {"id": i, "student_id": (i % 5) + 1, "date": date(2024, 3, i)} for i in range(1, 11)
    ])

    store.migrate()

    with store.session() as db:
        rows = db.execute(select(Attendance)).scalars().all()
        assert len(rows) == 10
        for row in rows:
            old_student_id = (row.date.day % 5) + 1
            assert row.student_code == legacy_code(old_student_id)
            assert db.get(Student, row.student_code) is not None
    store.dispose()


def test_presences_orphelines_ignorees_et_comptees(caplog):
    store = make_store_v5()
    insert_students(store, [{"id": 1, "name": "Ali"}])
    insert_attendance(store, [{"id": 1, "student_id": 1, "date": date(2024, 3, 1)}])
    insert_orphan_attendance(store, 99, date(2024, 3, 2))
    insert_orphan_attendance(store, 98, date(2024, 3, 3))

    report = store.migrate()

    assert report.orphan_attendance_dropped == 2
    assert count(store, attendance_v6) == 1
    assert "orpheline" in caplog.text
    store.dispose()


def test_tables_v6_identiques_aux_modeles():
    store = make_store_v5()
    store.migrate()

    inspector = inspect(store.engine)
    for model in (Student, Attendance):
        columns = {c["name"] for c in inspector.get_columns(model.__tablename__)}
        assert columns == set(model.__table__.columns.keys())
    assert inspector.get_pk_constraint("attendance")["constrained_columns"] == ["student_code", "date"]
    store.dispose()


def test_code_en_double_annule_la_migration():
    """Un code synthétisé qui heurte un code existant → rien n'est modifié, version 5 conservée."""
    store = make_store_v5()
    insert_students(store, [
        {"id": 1, "name": "Ali", "student_code": "STU2"},
        {"id": 2, "name": "Budi"},
    ])
    insert_attendance(store, [{"id": 1, "student_id": 2, "date": date(2024, 3, 1)}])

    with pytest.raises(MigrationError):
        store.migrate()

    assert store.current_schema_version() == 5
    assert count(store, legacy_students) == 2
    assert count(store, legacy_attendance) == 1
    with pytest.raises(MigrationError):
        with store.session():
            pass
    store.dispose()


def test_echec_apres_suppression_des_tables_annule_tout(monkeypatch):
    """Erreur à l'insertion des présences v6, tables déjà supprimées → anciennes tables restaurées."""
    store = make_store_v5()
    insert_students(store, [{"id": 1, "name": "Ali"}, {"id": 2, "name": "Budi"}])
    insert_attendance(store, [{"id": 1, "student_id": 2, "date": date(2024, 3, 1)}])

    real_insert = migrations.insert

    def failing_insert(table):
        if table is attendance_v6:
            raise OperationalError("INSERT INTO attendance", {}, Exception("disk I/O error"))
        return real_insert(table)

    monkeypatch.setattr(migrations, "insert", failing_insert)

    with pytest.raises(MigrationError):
        store.migrate()

    assert store.current_schema_version() == 5
    assert count(store, legacy_students) == 2
    assert count(store, legacy_attendance) == 1
    assert "id" in {c["name"] for c in inspect(store.engine).get_columns("students")}
    store.dispose()
