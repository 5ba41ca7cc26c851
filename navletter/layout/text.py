from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass

from reportlab.pdfbase import pdfmetrics


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FontSpec:
    family: str
    normal: str
    bold: str
    italic: str
    bold_italic: str

    def face(self, *, bold: bool = False, italic: bool = False) -> str:
        if bold and italic:
            return self.bold_italic
        if bold:
            return self.bold
        if italic:
            return self.italic
        return self.normal


@dataclass(frozen=True)
class StyledRun:
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False

    def same_style(self, other: 'StyledRun') -> bool:
        return (
            self.bold == other.bold
            and self.italic == other.italic
            and self.underline == other.underline
        )

    def with_text(self, text: str) -> 'StyledRun':
        return StyledRun(text=text, bold=self.bold, italic=self.italic, underline=self.underline)


FONT_FAMILIES: dict[str, FontSpec] = {
    'times': FontSpec('times', 'Times-Roman', 'Times-Bold', 'Times-Italic', 'Times-BoldItalic'),
    'helvetica': FontSpec('helvetica', 'Helvetica', 'Helvetica-Bold', 'Helvetica-Oblique', 'Helvetica-BoldOblique'),
    'courier': FontSpec('courier', 'Courier', 'Courier-Bold', 'Courier-Oblique', 'Courier-BoldOblique'),
}
DEFAULT_FONT = FONT_FAMILIES['times']

_FONT_ALIASES: dict[str, str] = {
    'times new roman': 'times',
    'times-roman': 'times',
    'serif': 'times',
    'arial': 'helvetica',
    'sans-serif': 'helvetica',
    'courier new': 'courier',
    'monospace': 'courier',
}


def resolve_font(family: str | None) -> FontSpec:
    token = str(family or '').strip().lower()
    token = _FONT_ALIASES.get(token, token)
    spec = FONT_FAMILIES.get(token)
    if spec is None:
        logger.warning('Unknown font family %r; falling back to %s', family, DEFAULT_FONT.family)
        return DEFAULT_FONT
    return spec


def measure_width(
    text: str,
    *,
    font: FontSpec,
    size: float,
    bold: bool = False,
    italic: bool = False,
) -> float:
    if not text:
        return 0.0
    face = font.face(bold=bold, italic=italic)
    try:
        return float(pdfmetrics.stringWidth(text, face, float(size)))
    except Exception as exc:
        logger.debug('Failed to measure %r in %s: %s', text, face, exc)
    fallback = DEFAULT_FONT.face(bold=bold, italic=italic)
    return float(pdfmetrics.stringWidth(text, fallback, float(size)))


def measure_run(run: StyledRun, *, font: FontSpec, size: float) -> float:
    return measure_width(run.text, font=font, size=size, bold=run.bold, italic=run.italic)


def ensure_double_spaces(text: str) -> str:
    """Two spaces after every sentence-ending period followed by one space."""
    if not text:
        return ''
    # Newlines are explicit line breaks, not sentence spacing.
    return re.sub(r'\.[^\S\n](?=\S)', '.  ', text)


_TAG_PATTERN = re.compile(r'<(/?)(b|strong|i|em|u)\s*>', re.IGNORECASE)
_TAG_STYLE = {
    'b': 'bold',
    'strong': 'bold',
    'i': 'italic',
    'em': 'italic',
    'u': 'underline',
}


def parse_to_runs(markup: str) -> list[StyledRun]:
    """Split inline <b>/<i>/<u> markup into styled runs.

    Tags may nest. A closing tag that was never opened is kept as literal
    text, as is anything that looks like an unsupported tag.
    """
    source = str(markup or '').replace('\r\n', '\n').replace('\r', '\n')
    if not source:
        return []

    runs: list[StyledRun] = []
    depth = {'bold': 0, 'italic': 0, 'underline': 0}

    def _append(text: str) -> None:
        text = html.unescape(text)
        if not text:
            return
        run = StyledRun(
            text=text,
            bold=depth['bold'] > 0,
            italic=depth['italic'] > 0,
            underline=depth['underline'] > 0,
        )
        if runs and runs[-1].same_style(run):
            runs[-1] = runs[-1].with_text(runs[-1].text + text)
            return
        runs.append(run)

    cursor = 0
    for match in _TAG_PATTERN.finditer(source):
        closing, name = match.group(1), match.group(2).lower()
        style = _TAG_STYLE[name]
        if closing and depth[style] == 0:
            continue
        _append(source[cursor:match.start()])
        cursor = match.end()
        if closing:
            depth[style] -= 1
        else:
            depth[style] += 1
    _append(source[cursor:])
    return runs


def runs_to_plain_text(runs: list[StyledRun]) -> str:
    return ''.join(run.text for run in runs)
