"""
Service d'export des rapports PDF vers le dossier de téléchargement.

Nom de fichier : laporan_{nom_en_snake_case}_{ddMMyy}.pdf, suffixé (1), (2)...
si un fichier du même nom existe déjà. Un fichier existant n'est jamais écrasé.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

from sqlalchemy.orm import Session

from mytpq.config import settings
from mytpq.services.report_pdf import render_report_pdf
from mytpq.services.report_service import build_student_report

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "laporan"


def report_filename(name: str, day: date) -> str:
    """ "Ahmad Fauzi" le 3 mars 2025 → "laporan_ahmad_fauzi_030325" (sans extension)."""
    snake = re.sub(r"\W+", "_", name.strip().lower()).strip("_") or "siswa"
    return f"{FILENAME_PREFIX}_{snake}_{day.strftime('%d%m%y')}"


def available_path(directory: Path, base_name: str, extension: str = ".pdf") -> Path:
    """Premier chemin libre : base.pdf, puis base(1).pdf, base(2).pdf..."""
    candidate = directory / f"{base_name}{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{base_name}({counter}){extension}"
        counter += 1
    return candidate


def save_document(
    content: bytes,
    directory: Union[str, Path],
    base_name: str,
    extension: str = ".pdf",
) -> Path:
    """Écrit le contenu dans le dossier (créé au besoin) et retourne le chemin final."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    path = available_path(directory, base_name, extension)
    # "x" : échoue plutôt que d'écraser un fichier apparu entre-temps
    with open(path, "xb") as f:
        f.write(content)

    logger.info("Document enregistré : %s (%d octets)", path, len(content))
    return path


def export_student_report(
    db: Session,
    student_code: str,
    directory: Optional[Union[str, Path]] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Rapport → PDF → fichier. Lève NotFoundError si l'élève n'existe pas."""
    generated_at = now or datetime.now()
    today = today or generated_at.date()

    report = build_student_report(db, student_code, today=today, now=generated_at)
    document = render_report_pdf(report)
    return save_document(
        document.content,
        directory or settings.EXPORT_DIR,
        report_filename(report.name, today),
    )
