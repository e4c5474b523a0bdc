# app/pdf_report.py
import hashlib
import io
import threading
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, StyleSheet1, getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

import config
from errors import AssetMissing, StreamWriteError
from logging_setup import get_logger
from models import RelativeRecord, ReportRequest

logger = get_logger(__name__)

WATERMARK_FILE = "logo_raizes.png"
WATERMARK_WIDTH = 300
WATERMARK_HEIGHT = 300
WATERMARK_OPACITY = 0.3

PAGE_MARGIN = 72

TITLE = "RELATÓRIO"
FAMILY_HEADER = "Familiares com histórico de câncer:"
NO_RELATIVES = "Não foram relatados familiares com histórico de câncer."
CLOSING_MEETS = (
    "Baseado nessas informações, o paciente <b>atende aos critérios</b> "
    "internacionalmente reconhecidos, indicando que ele se beneficiaria de um "
    "encaminhamento para investigação em um serviço especializado em oncogenética."
)
CLOSING_DOES_NOT_MEET = (
    "Baseado nessas informações, o paciente <b>não atende aos critérios</b> "
    "internacionalmente reconhecidos para encaminhamento a um serviço "
    "especializado em oncogenética."
)


class ByteSink(Protocol):
    """Destination of the rendered document: ordered writes, then close()."""

    def write(self, data: bytes) -> Any: ...

    def close(self) -> None: ...


class BufferSink:
    """In-memory sink whose bytes stay readable after close()."""

    def __init__(self):
        self._buffer = io.BytesIO()
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to a closed sink")
        return self._buffer.write(data)

    def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


class _SinkWriter:
    """Adapter handed to reportlab; turns sink failures into StreamWriteError."""

    def __init__(self, sink: ByteSink):
        self._sink = sink
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        try:
            self._sink.write(data)
        except Exception as e:
            raise StreamWriteError(
                f"Sink rejected a write: {e}",
                details={"bytes_written": self.bytes_written},
            ) from e
        self.bytes_written += len(data)
        return len(data)

    def close(self) -> None:
        try:
            self._sink.close()
        except Exception as e:
            raise StreamWriteError(
                f"Sink rejected close: {e}",
                details={"bytes_written": self.bytes_written},
            ) from e


# ---------- assets ----------

@dataclass(frozen=True)
class ReportAssets:
    watermark: bytes
    regular_font: str
    bold_font: str


# pdfmetrics keeps one registry per process; writes to it go through this lock
_font_registry_lock = threading.Lock()


def _register_font(filename: str, assets_dir: Path) -> str:
    local = assets_dir / filename
    source = str(local.resolve()) if local.is_file() else filename
    # Same file name from another directory must not reuse this registration
    digest = hashlib.sha1(source.encode("utf-8")).hexdigest()[:8]
    font_name = f"Report-{Path(filename).stem}-{digest}"

    with _font_registry_lock:
        if font_name in pdfmetrics.getRegisteredFontNames():
            return font_name
        try:
            pdfmetrics.registerFont(TTFont(font_name, source))
        except (TTFError, OSError) as e:
            raise AssetMissing(f"Font {filename!r} could not be loaded: {e}", asset=filename) from e
    return font_name


def _read_watermark(assets_dir: Path) -> bytes:
    path = assets_dir / WATERMARK_FILE
    try:
        data = path.read_bytes()
        ImageReader(io.BytesIO(data)).getSize()
    except Exception as e:
        raise AssetMissing(
            f"Watermark image could not be loaded: {e}",
            asset=WATERMARK_FILE,
            details={"path": str(path)},
        ) from e
    return data


@lru_cache(maxsize=None)
def load_assets(assets_dir: Path, regular_font_file: str, bold_font_file: str) -> ReportAssets:
    """Load and cache the watermark bytes and register both font weights.

    Failures are not cached, so a fixed deployment recovers without restart.
    """
    watermark = _read_watermark(assets_dir)
    regular = _register_font(regular_font_file, assets_dir)
    bold = _register_font(bold_font_file, assets_dir)

    with _font_registry_lock:
        # Lets <b> inside a paragraph resolve to the bold file
        pdfmetrics.registerFontFamily(regular, normal=regular, bold=bold, italic=regular, boldItalic=bold)

    logger.info(
        "Report assets loaded",
        extra={"assets_dir": str(assets_dir), "regular_font": regular, "bold_font": bold},
    )
    return ReportAssets(watermark=watermark, regular_font=regular, bold_font=bold)


# ---------- content ----------

def build_styles(regular_font: str = "Helvetica", bold_font: str = "Helvetica-Bold") -> StyleSheet1:
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="ReportTitle",
            parent=styles["Title"],
            fontName=bold_font,
            fontSize=18,
            leading=22,
            alignment=TA_CENTER,
        )
    )
    styles.add(
        ParagraphStyle(
            name="ReportBody",
            parent=styles["BodyText"],
            fontName=regular_font,
            fontSize=12,
            leading=16,
        )
    )
    styles.add(
        ParagraphStyle(
            name="ReportClosing",
            parent=styles["ReportBody"],
            alignment=TA_JUSTIFY,
        )
    )
    return styles


def group_relatives(relatives: Sequence[RelativeRecord]) -> List[Tuple[str, List[RelativeRecord]]]:
    """Split relatives into runs of consecutive equal ``relation`` values.

    Order is kept both across and inside groups. A relation that shows up
    again after a different one starts a new group.
    """
    groups: List[Tuple[str, List[RelativeRecord]]] = []
    current_relation: Optional[str] = None
    current: List[RelativeRecord] = []

    for relative in relatives:
        if current and relative.relation != current_relation:
            groups.append((current_relation, current))
            current = []
        current_relation = relative.relation
        current.append(relative)

    if current:
        groups.append((current_relation, current))
    return groups


def format_group_line(relation: str, members: Sequence[RelativeRecord]) -> str:
    diagnoses = ", ".join(
        f"{escape(m.cancer_type)} aos {m.age_at_diagnosis} anos" for m in members
    )
    return f"- {escape(relation)}: {diagnoses}."


def build_narrative(request: ReportRequest, styles: StyleSheet1) -> Paragraph:
    name = escape(request.subject_name)
    history = request.personal_history.strip()
    if history:
        text = (
            f"Sr(a). {name} possui história pessoal de {escape(history)}, "
            f"atualmente com {request.subject_age} anos."
        )
    else:
        text = (
            f"Sr(a). {name} não possui história pessoal de câncer, "
            f"atualmente com {request.subject_age} anos."
        )
    return Paragraph(text, styles["ReportBody"])


def build_family_section(relatives: Sequence[RelativeRecord], styles: StyleSheet1) -> list:
    if not relatives:
        return [Paragraph(NO_RELATIVES, styles["ReportBody"])]

    story = [Paragraph(FAMILY_HEADER, styles["ReportBody"])]
    for relation, members in group_relatives(relatives):
        story.append(Spacer(1, 6))
        story.append(Paragraph(format_group_line(relation, members), styles["ReportBody"]))
    return story


def build_eligibility_statement(meets_criteria: bool, styles: StyleSheet1) -> Paragraph:
    text = CLOSING_MEETS if meets_criteria else CLOSING_DOES_NOT_MEET
    return Paragraph(text, styles["ReportClosing"])


def build_story(request: ReportRequest, styles: StyleSheet1) -> list:
    story = []
    story.append(Paragraph(TITLE, styles["ReportTitle"]))
    story.append(Spacer(1, 12))
    story.append(build_narrative(request, styles))
    story.append(Spacer(1, 12))
    story.extend(build_family_section(request.relatives, styles))
    story.append(Spacer(1, 12))
    story.append(build_eligibility_statement(request.meets_referral_criteria, styles))
    return story


def page_decorator(watermark: ImageReader) -> Callable[[Any, Any], None]:
    """Page hook drawing the faded logo in the middle of every new page."""

    def draw_watermark(canvas, doc) -> None:
        page_width, page_height = doc.pagesize
        canvas.saveState()
        canvas.setFillAlpha(WATERMARK_OPACITY)
        canvas.drawImage(
            watermark,
            (page_width - WATERMARK_WIDTH) / 2,
            (page_height - WATERMARK_HEIGHT) / 2,
            width=WATERMARK_WIDTH,
            height=WATERMARK_HEIGHT,
            mask="auto",
        )
        canvas.restoreState()

    return draw_watermark


# ---------- renderer ----------

class ReportRenderer:
    """Renders a ReportRequest as a PDF into a sink.

    Instances hold configuration only and can be shared between threads;
    every call to ``render`` builds its own document, styles and image handle.
    """

    def __init__(
        self,
        assets_dir: Optional[Path] = None,
        regular_font: Optional[str] = None,
        bold_font: Optional[str] = None,
    ):
        self.assets_dir = Path(assets_dir or config.REPORT_ASSETS_DIR)
        self.regular_font = regular_font or config.REPORT_FONT_REGULAR
        self.bold_font = bold_font or config.REPORT_FONT_BOLD

    def render(self, request: ReportRequest, sink: ByteSink) -> None:
        # Raises AssetMissing before anything touches the sink
        assets = load_assets(self.assets_dir, self.regular_font, self.bold_font)

        styles = build_styles(assets.regular_font, assets.bold_font)
        decorate = page_decorator(ImageReader(io.BytesIO(assets.watermark)))
        writer = _SinkWriter(sink)

        doc = SimpleDocTemplate(
            writer,
            pagesize=letter,
            leftMargin=PAGE_MARGIN,
            rightMargin=PAGE_MARGIN,
            topMargin=PAGE_MARGIN,
            bottomMargin=PAGE_MARGIN,
            title=f"Relatório - {request.subject_name}",
            author="Raízes",
            invariant=1,
        )
        doc.build(build_story(request, styles), onFirstPage=decorate, onLaterPages=decorate)
        writer.close()

        logger.info(
            "Report rendered",
            extra={"pages": doc.page, "bytes": writer.bytes_written, "relatives": len(request.relatives)},
        )
