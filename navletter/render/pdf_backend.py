from __future__ import annotations

import io
import logging
from pathlib import Path

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas

from ..layout.engine import KeepTogetherPolicy, LayoutResult, render_document
from ..layout.geometry import PAGE_HEIGHT, PAGE_WIDTH, DrawImage, DrawLine, DrawText, Page
from ..types import DocumentData


logger = logging.getLogger(__name__)

PRODUCER = 'Naval Letter Generator'


def _safe_canvas_font(canvas, font_name: str, size: float) -> None:
    for candidate in (str(font_name or '').strip(), 'Times-Roman'):
        if not candidate:
            continue
        try:
            canvas.setFont(candidate, size)
            return
        except Exception:
            continue


def _flip(y: float) -> float:
    # Layout y grows downward from the top edge; PDF y grows upward.
    return PAGE_HEIGHT - y


def _draw_text(canvas, op: DrawText) -> None:
    _safe_canvas_font(canvas, op.font, op.size)
    if op.align == 'center':
        canvas.drawCentredString(op.x, _flip(op.y), op.text)
    elif op.align == 'right':
        canvas.drawRightString(op.x, _flip(op.y), op.text)
    else:
        canvas.drawString(op.x, _flip(op.y), op.text)


def _draw_line(canvas, op: DrawLine) -> None:
    canvas.setLineWidth(op.width)
    canvas.line(op.x1, _flip(op.y1), op.x2, _flip(op.y2))


def _draw_image(canvas, op: DrawImage) -> None:
    try:
        canvas.drawImage(
            ImageReader(io.BytesIO(op.data)),
            op.x,
            _flip(op.y + op.height),
            width=op.width,
            height=op.height,
            preserveAspectRatio=True,
            mask='auto',
        )
    except Exception as exc:
        logger.warning('Failed to draw seal image: %s', exc)


def _paint_page(canvas, page: Page) -> None:
    canvas.saveState()
    for op in page.ops:
        if isinstance(op, DrawText):
            _draw_text(canvas, op)
        elif isinstance(op, DrawLine):
            _draw_line(canvas, op)
        elif isinstance(op, DrawImage):
            _draw_image(canvas, op)
    canvas.restoreState()


def pages_to_pdf(pages: list[Page], *, title: str = '') -> bytes:
    buffer = io.BytesIO()
    canvas = pdf_canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    canvas.setProducer(PRODUCER)
    if title:
        canvas.setTitle(title)
    for page in pages:
        _paint_page(canvas, page)
        canvas.showPage()
    canvas.save()
    return buffer.getvalue()


def render_pdf(data: DocumentData, *, policy: KeepTogetherPolicy | None = None) -> bytes:
    """Lay out ``data`` and paint it onto a reportlab canvas."""
    layout: LayoutResult = render_document(data, policy=policy)
    logger.info('Rendering %d page PDF', layout.page_count)
    return pages_to_pdf(layout.pages, title=data.subject_upper)


def write_pdf(data: DocumentData, output_path: Path, *, policy: KeepTogetherPolicy | None = None) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(render_pdf(data, policy=policy))
    return output_path
