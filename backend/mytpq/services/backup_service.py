"""
Sauvegarde et restauration de toute la base au format JSON.

Document : { "students": [...], "attendances": [...], "exportTimestamp": ... }
avec les noms de champs camelCase historiques (studentCode, catatanGuru...).

Stratégie d'import : "best effort"
- Les élèves sont traités avant les présences
- Chaque ligne est validée (Pydantic) puis écrite dans son propre SAVEPOINT :
  une ligne invalide est rejetée et notée, les autres continuent
- Clé existante → remplacement complet (pas de fusion champ par champ)
- Un seul commit en fin d'import
L'import ne recopie pas les positions de lecture sur les élèves :
la fiche élève importée fait foi.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mytpq.models.attendance import Attendance
from mytpq.models.student import Student
from mytpq.schemas.attendance import AttendanceRecord
from mytpq.schemas.backup import CollectionCounts, ExportData, ImportReport, ImportRowError
from mytpq.schemas.student import StudentRecord

logger = logging.getLogger(__name__)


def export_data(db: Session, now: Optional[datetime] = None) -> ExportData:
    """Instantané complet des deux tables."""
    students = db.execute(select(Student).order_by(Student.student_code)).scalars().all()
    attendances = db.execute(
        select(Attendance).order_by(Attendance.student_code, Attendance.date)
    ).scalars().all()

    data = ExportData(
        students=[StudentRecord.model_validate(s, from_attributes=True) for s in students],
        attendances=[AttendanceRecord.model_validate(a, from_attributes=True) for a in attendances],
        export_timestamp=now or datetime.now(),
    )
    logger.info("Export JSON : %d élèves, %d présences", len(data.students), len(data.attendances))
    return data


def export_json(db: Session, now: Optional[datetime] = None) -> str:
    return export_data(db, now).model_dump_json(by_alias=True, indent=2)


def _reason(exc: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in e['loc']) or 'ligne'}: {e['msg']}" for e in exc.errors())


def _raw_key(raw: Any, with_date: bool = False) -> Optional[str]:
    """Clé lisible d'une ligne brute, pour le rapport d'erreurs."""
    if not isinstance(raw, dict):
        return None
    code = raw.get("studentCode", raw.get("student_code"))
    if code is None:
        return None
    return f"{code}@{raw.get('date')}" if with_date else str(code)


def _load_document(payload: Union[str, bytes, dict]) -> dict:
    """Décode le document et vérifie la présence des deux collections. Lève ValueError."""
    document = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
    if not isinstance(document, dict):
        raise ValueError("le document JSON doit être un objet")
    for collection in ("students", "attendances"):
        if not isinstance(document.get(collection), list):
            raise ValueError(f"collection '{collection}' absente ou invalide")
    return document


def import_data(db: Session, payload: Union[str, bytes, dict]) -> ImportReport:
    """
    Importe un document d'export.

    Returns:
        ImportReport: compteurs nouveaux / remplacés par collection et lignes rejetées
    """
    report = ImportReport()
    try:
        document = _load_document(payload)
    except ValueError as exc:
        # json.JSONDecodeError est une ValueError
        report.errors.append(ImportRowError(collection="document", index=-1, reason=str(exc)))
        logger.warning("Import refusé : %s", exc)
        return report

    for index, raw in enumerate(document["students"]):
        try:
            record = StudentRecord.model_validate(raw)
        except ValidationError as exc:
            report.errors.append(
                ImportRowError(collection="students", index=index, key=_raw_key(raw), reason=_reason(exc))
            )
            continue
        _write_row(
            db, report, report.students, "students", index, record.student_code,
            Student, record.student_code, Student(**record.model_dump()),
        )

    for index, raw in enumerate(document["attendances"]):
        try:
            record = AttendanceRecord.model_validate(raw)
        except ValidationError as exc:
            report.errors.append(
                ImportRowError(collection="attendances", index=index, key=_raw_key(raw, True), reason=_reason(exc))
            )
            continue

        key = f"{record.student_code}@{record.date.isoformat()}"
        if db.get(Student, record.student_code) is None:
            report.errors.append(
                ImportRowError(collection="attendances", index=index, key=key, reason="élève inconnu")
            )
            continue
        _write_row(
            db, report, report.attendances, "attendances", index, key,
            Attendance, (record.student_code, record.date), Attendance(**record.model_dump()),
        )

    db.commit()

    logger.info(
        "Import JSON : élèves %d nouveaux / %d remplacés, présences %d nouvelles / %d remplacées, %d rejets",
        report.students.new, report.students.updated,
        report.attendances.new, report.attendances.updated, len(report.errors),
    )
    return report


def _write_row(
    db: Session,
    report: ImportReport,
    counts: CollectionCounts,
    collection: str,
    index: int,
    key: str,
    model,
    identity,
    row,
) -> None:
    """Remplace ou insère une ligne dans un SAVEPOINT ; un échec n'annule que cette ligne."""
    try:
        with db.begin_nested():
            existing = db.get(model, identity)
            db.merge(row)
    except SQLAlchemyError as exc:
        logger.warning("Import : ligne %s[%d] (%s) rejetée : %s", collection, index, key, exc)
        report.errors.append(ImportRowError(collection=collection, index=index, key=key, reason=str(exc)))
        return

    if existing is None:
        counts.new += 1
    else:
        counts.updated += 1
