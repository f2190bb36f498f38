"""
Service de génération PDF du rapport de progression d'un élève.

Mise en page en une seule passe sur des pages A4 (595 x 842 points) :
titre, bloc d'identité encadré, sections statistiques, puis une carte de
hauteur fixe par jour de présence. Une carte ne déborde jamais sur deux pages :
si elle ne tient plus, la page est terminée et la suite reprend sous un
sous-titre "(lanjutan)". Le pied de page dispose d'une bande réservée.

Les ordonnées `y` sont mesurées depuis le haut de la page, comme sur l'écran ;
la conversion vers le repère ReportLab (origine en bas) se fait au dessin.
"""

import io
import logging
from datetime import date, datetime
from typing import List, NamedTuple, Optional

from reportlab.lib import colors
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from mytpq.config import settings
from mytpq.schemas.report import NO_DATA, STATUS_PASSED, DailyReport, RenderedDocument, StudentReport

logger = logging.getLogger(__name__)

PAGE_WIDTH = 595
PAGE_HEIGHT = 842
LEFT = 40
RIGHT = 555
TOP = 50
BOTTOM_MARGIN = 40

CARD_HEIGHT = 80
CARD_GAP = 10
CARD_PITCH = CARD_HEIGHT + CARD_GAP
CONTINUED_HEADING_HEIGHT = 28
CONTINUED_CARDS_TOP = TOP + CONTINUED_HEADING_HEIGHT

# Trait + "Dicetak pada" + nom de l'école
FOOTER_HEIGHT = 50
# Aucune carte ne descend sous cette ordonnée : la bande du pied de page reste libre
CARD_LIMIT = PAGE_HEIGHT - BOTTOM_MARGIN - FOOTER_HEIGHT

TITLE = "LAPORAN PERKEMBANGAN SISWA TPQ"
DAILY_HEADING = "Laporan Harian"
DAILY_CONTINUED = "Laporan Harian (lanjutan)"

DARK_GREEN = colors.Color(0, 100 / 255, 0)
PASS_GREEN = colors.Color(0, 150 / 255, 0)
CARD_FILL = colors.Color(0, 100 / 255, 0, alpha=0.08)

FONT = "Times-Roman"
FONT_BOLD = "Times-Bold"

ID_DAYS = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]
ID_MONTHS = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


class CardPlacement(NamedTuple):
    page: int     # index de page, 0 = première page
    top: float    # ordonnée du haut de la carte


def layout_cards(
    count: int,
    first_top: float,
    continued_top: float = CONTINUED_CARDS_TOP,
    limit: float = CARD_LIMIT,
) -> List[CardPlacement]:
    """
    Place `count` cartes : on passe à la page suivante dès que la carte
    courante dépasserait `limit`. Calcul pur, utilisé tel quel par le rendu.
    """
    if continued_top + CARD_HEIGHT > limit:
        raise ValueError("Une page de suite ne peut contenir aucune carte.")

    placements = []
    page, y = 0, first_top
    for _ in range(count):
        if y + CARD_HEIGHT > limit:
            page += 1
            y = continued_top
        placements.append(CardPlacement(page, y))
        y += CARD_PITCH
    return placements


def format_long_date(value: Optional[date]) -> str:
    """Date de naissance à l'indonésienne : "Senin, 5 Januari 2015"."""
    if value is None:
        return NO_DATA
    return f"{ID_DAYS[value.weekday()]}, {value.day} {ID_MONTHS[value.month - 1]} {value.year}"


def format_generated_at(value: datetime) -> str:
    return f"{value.day}/{value.month}/{value.year}"


def _fit(text: str, font: str, size: float, max_width: float) -> str:
    """Coupe le texte avec "..." pour qu'il tienne dans la largeur de la carte."""
    if stringWidth(text, font, size) <= max_width:
        return text
    while text and stringWidth(text + "...", font, size) > max_width:
        text = text[:-1]
    return text + "..."


def _text(pdf, x: float, y: float, value: str, font: str = FONT, size: float = 14, color=colors.black) -> None:
    pdf.setFont(font, size)
    pdf.setFillColor(color)
    pdf.drawString(x, PAGE_HEIGHT - y, value)


def _rule(pdf, y: float) -> None:
    pdf.setStrokeColor(DARK_GREEN)
    pdf.setLineWidth(2)
    pdf.line(LEFT, PAGE_HEIGHT - y, RIGHT, PAGE_HEIGHT - y)


def _heading(pdf, y: float, value: str) -> None:
    _text(pdf, LEFT, y, value, font=FONT_BOLD, size=16, color=DARK_GREEN)


def _draw_header(pdf, report: StudentReport) -> float:
    """Titre, identité et sections statistiques. Retourne l'ordonnée de la première carte."""
    y = TOP
    _text(pdf, LEFT, y, TITLE, font=FONT_BOLD, size=24, color=DARK_GREEN)
    y += 40

    # Bloc d'identité encadré (4 lignes)
    box_top, box_bottom = y - 18, y + 70
    pdf.setStrokeColor(DARK_GREEN)
    pdf.setLineWidth(2)
    pdf.rect(LEFT - 5, PAGE_HEIGHT - box_bottom, RIGHT - LEFT + 10, box_bottom - box_top, stroke=1, fill=0)
    for label, value in (
        ("Nama", report.name),
        ("Tingkat Bacaan", report.position_summary_label),
        ("Tanggal Lahir", format_long_date(report.birth_date)),
        ("Jenis Kelamin", report.gender or NO_DATA),
    ):
        _text(pdf, LEFT, y, f"{label:<16}: {value}")
        y += 20
    y += 10

    _rule(pdf, y)
    y += 24
    _heading(pdf, y, f"STATISTIK KEHADIRAN ({(report.window_end - report.window_start).days + 1} HARI)")
    y += 28
    _text(pdf, LEFT, y, f"• Hadir          : {report.attendance_count} hari")
    y += 24

    _rule(pdf, y)
    y += 24
    _heading(pdf, y, "PERKEMBANGAN BACAAN")
    y += 28
    _text(pdf, LEFT, y, f"• Awal periode  : {report.start_reading}")
    y += 20
    _text(pdf, LEFT, y, f"• Saat ini      : {report.current_reading}")
    y += 30

    _rule(pdf, y)
    y += 24
    _heading(pdf, y, "PRESTASI")
    y += 28
    _text(pdf, LEFT, y, f"• Total Lulus     : {report.total_passed}")
    y += 20
    _text(pdf, LEFT, y, f"• Total Mengulang : {report.total_retake}")
    y += 30

    _rule(pdf, y)
    y += 24
    _heading(pdf, y, DAILY_HEADING)
    y += CONTINUED_HEADING_HEIGHT
    return y


def _draw_card(pdf, top: float, daily: DailyReport) -> None:
    pdf.setFillColor(CARD_FILL)
    pdf.setStrokeColor(DARK_GREEN)
    pdf.setLineWidth(2)
    pdf.roundRect(LEFT, PAGE_HEIGHT - (top + CARD_HEIGHT), RIGHT - LEFT, CARD_HEIGHT, 8, stroke=1, fill=1)

    width = RIGHT - LEFT - 16
    x = LEFT + 8
    _text(pdf, x, top + 20, daily.date.strftime("%d/%m/%Y"))
    _text(pdf, x, top + 40, _fit(f"Bacaan: {daily.reading}", FONT, 14, width))
    status_color = PASS_GREEN if daily.status == STATUS_PASSED else colors.black
    _text(pdf, x, top + 60, f"Status: {daily.status}", color=status_color)
    _text(pdf, x, top + 75, _fit(f"Catatan: {daily.note}", FONT, 12, width), size=12)


def _draw_footer(pdf, y: float, report: StudentReport, school_name: str) -> None:
    _rule(pdf, y)
    center = (LEFT + RIGHT) / 2
    pdf.setFont(FONT, 14)
    pdf.setFillColor(colors.black)
    pdf.drawCentredString(center, PAGE_HEIGHT - (y + 20), f"Dicetak pada: {format_generated_at(report.generated_at)}")
    pdf.setFont(FONT_BOLD, 16)
    pdf.setFillColor(DARK_GREEN)
    pdf.drawCentredString(center, PAGE_HEIGHT - (y + FOOTER_HEIGHT), school_name)


def render_report_pdf(report: StudentReport, school_name: Optional[str] = None) -> RenderedDocument:
    """
    Génère le PDF du rapport.

    Returns:
        RenderedDocument: contenu PDF et nombre de pages
    """
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    pdf.setTitle(f"Laporan {report.name}")
    pdf.setAuthor(school_name or settings.SCHOOL_NAME)

    y = _draw_header(pdf, report)
    placements = layout_cards(len(report.daily_reports), y)

    page = 0
    for daily, placement in zip(report.daily_reports, placements):
        if placement.page != page:
            pdf.showPage()
            page = placement.page
            _heading(pdf, TOP, DAILY_CONTINUED)
        _draw_card(pdf, placement.top, daily)
        y = placement.top + CARD_PITCH

    _draw_footer(pdf, y, report, school_name or settings.SCHOOL_NAME)
    pdf.save()

    logger.info("PDF généré pour %s : %d page(s)", report.student_code, page + 1)
    return RenderedDocument(content=buffer.getvalue(), page_count=page + 1)
