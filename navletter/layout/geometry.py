from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..types import ParagraphLevel
from .text import FontSpec, StyledRun, measure_width
from .wrap import LayoutLine, RichTextWrapper


logger = logging.getLogger(__name__)

# US Letter, 1-inch margins (points)
PAGE_WIDTH = 612.0
PAGE_HEIGHT = 792.0
MARGIN_LEFT = 72.0
MARGIN_RIGHT = 72.0
MARGIN_TOP = 72.0
MARGIN_BOTTOM = 72.0
CONTENT_WIDTH = PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT
CONTENT_RIGHT = PAGE_WIDTH - MARGIN_RIGHT
CONTENT_BOTTOM = PAGE_HEIGHT - MARGIN_BOTTOM

TAB = 45.0
LABEL_GAP = 4.0
SUBJECT_GAP = 6.0
MIN_TRAILING_WIDTH = 50.0
CONTINUATION_BODY_LINES = 2
# Tolerance for accumulated float error in fit checks
EPSILON = 1e-6

LEVEL_INDENTS: dict[ParagraphLevel, float] = {
    ParagraphLevel.top: 0.0,
    ParagraphLevel.sub: 15.0,
    ParagraphLevel.subsub: 15.0 + 16.0,
    ParagraphLevel.subsubsub: 15.0 + 16.0 + 18.0,
}

FIRST_PAGE_TOP = 54.0
LETTERHEAD_MIN_Y = 130.0
SENDER_X = PAGE_WIDTH - MARGIN_RIGHT - 72.0
SIGNATURE_X = PAGE_WIDTH / 2
SEAL_BOX = (36.0, 36.0, 72.0, 72.0)

CLASSIFICATION_TOP_Y = 36.0
CLASSIFICATION_BOTTOM_Y = PAGE_HEIGHT - 36.0
PAGE_NUMBER_Y = PAGE_HEIGHT - 36.0
PAGE_NUMBER_Y_WITH_BANNER = PAGE_HEIGHT - 50.0


def line_height_for(font_size: float) -> float:
    # 12pt body -> 14pt leading
    return round(float(font_size) * 7.0 / 6.0, 2)


@dataclass(frozen=True)
class DrawText:
    text: str
    x: float
    y: float
    font: str
    size: float
    align: str = 'left'


@dataclass(frozen=True)
class DrawLine:
    x1: float
    y1: float
    x2: float
    y2: float
    width: float = 0.5


@dataclass(frozen=True)
class DrawImage:
    data: bytes
    x: float
    y: float
    width: float
    height: float


DrawOp = DrawText | DrawLine | DrawImage


@dataclass
class Page:
    number: int
    ops: list[DrawOp] = field(default_factory=list)

    def texts(self) -> list[DrawText]:
        return [op for op in self.ops if isinstance(op, DrawText)]

    def lines(self) -> list[DrawLine]:
        return [op for op in self.ops if isinstance(op, DrawLine)]


@dataclass
class PageCursor:
    page: int
    y: float
    top: float = MARGIN_TOP
    bottom: float = CONTENT_BOTTOM

    @property
    def remaining(self) -> float:
        return self.bottom - self.y


class PageFlow:
    """Vertical cursor over a growing list of pages.

    Owns the running matter: the classification banner on every page, the
    ``Subj:`` continuation header on pages after the first, and the page
    number and bottom banner painted once in :meth:`finish`.
    """

    def __init__(
        self,
        *,
        font: FontSpec,
        font_size: float,
        classification: str = '',
        subject: str = '',
        first_page_top: float = FIRST_PAGE_TOP,
    ):
        self.font = font
        self.font_size = float(font_size)
        self.line_height = line_height_for(font_size)
        self.classification = classification
        self.subject = subject
        self.wrapper = RichTextWrapper(font, font_size, self.line_height)
        self.pages: list[Page] = [Page(number=1)]
        self.cursor = PageCursor(page=1, y=first_page_top)
        self._page_content_top = first_page_top
        self._paint_top_banner()

    @property
    def page(self) -> Page:
        return self.pages[-1]

    @property
    def y(self) -> float:
        return self.cursor.y

    @y.setter
    def y(self, value: float) -> None:
        self.cursor.y = value

    @property
    def remaining(self) -> float:
        return self.cursor.remaining

    @property
    def at_page_top(self) -> bool:
        return self.cursor.page > 1 and self.cursor.y <= self._page_content_top

    def advance(self, lines: float = 1.0) -> None:
        self.cursor.y += self.line_height * lines

    def fits(self, need: float) -> bool:
        return self.cursor.y + need <= self.cursor.bottom + EPSILON

    def ensure_space(self, need: float) -> bool:
        """Break before drawing when ``need`` points do not fit. Returns True on break."""
        if self.fits(need):
            return False
        if self.at_page_top:
            # Taller than a fresh page; let it run over line by line.
            return False
        self.break_page()
        return True

    def after_draw(self, current_y: float) -> float:
        """Commit the cursor after drawing a line; break if the next line will not fit."""
        self.cursor.y = current_y
        if not self.fits(self.line_height):
            self.break_page()
        return self.cursor.y

    def break_page(self) -> None:
        self.cursor.page += 1
        self.cursor.y = self.cursor.top
        self.pages.append(Page(number=self.cursor.page))
        logger.debug('Page break -> page %d', self.cursor.page)
        self._paint_top_banner()
        self._paint_continuation_header()
        self._page_content_top = self.cursor.y

    # Drawing

    def text(
        self,
        text: str,
        x: float,
        *,
        y: float | None = None,
        bold: bool = False,
        italic: bool = False,
        size: float | None = None,
        align: str = 'left',
    ) -> None:
        if not text:
            return
        self.page.ops.append(
            DrawText(
                text=text,
                x=x,
                y=self.cursor.y if y is None else y,
                font=self.font.face(bold=bold, italic=italic),
                size=self.font_size if size is None else float(size),
                align=align,
            )
        )

    def rule(self, x1: float, x2: float, *, y: float | None = None, width: float = 0.5) -> None:
        baseline = self.cursor.y if y is None else y
        self.page.ops.append(DrawLine(x1=x1, y1=baseline + 2, x2=x2, y2=baseline + 2, width=width))

    def image(self, data: bytes, x: float, y: float, width: float, height: float) -> None:
        self.page.ops.append(DrawImage(data=data, x=x, y=y, width=width, height=height))

    def draw_line(self, line: LayoutLine) -> None:
        for segment in line.segments:
            if not segment.text:
                continue
            x = line.x + segment.x
            self.page.ops.append(
                DrawText(
                    text=segment.text,
                    x=x,
                    y=line.y,
                    font=self.font.face(bold=segment.bold, italic=segment.italic),
                    size=self.font_size,
                )
            )
            if segment.underline and segment.text.strip():
                self.page.ops.append(
                    DrawLine(x1=x, y1=line.y + 2, x2=x + segment.width, y2=line.y + 2, width=0.5)
                )

    def measure(self, text: str, *, bold: bool = False, italic: bool = False) -> float:
        return measure_width(text, font=self.font, size=self.font_size, bold=bold, italic=italic)

    def wrap_plain(self, text: str, *, x: float, width: float) -> list[LayoutLine]:
        runs = [StyledRun(text=text)] if text else []
        result = self.wrapper.wrap(runs, first_x=x, first_width=width, cont_x=x, cont_width=width)
        return result.lines

    # Running matter

    def _paint_top_banner(self) -> None:
        if not self.classification:
            return
        self.text(
            self.classification,
            PAGE_WIDTH / 2,
            y=CLASSIFICATION_TOP_Y,
            bold=True,
            align='center',
        )

    def continuation_header_lines(self) -> list[LayoutLine]:
        """Wrapped subject repeated under ``Subj:`` on pages after the first.

        Capped so a fresh page still holds the blank line after the header
        and ``CONTINUATION_BODY_LINES`` of body text.
        """
        if not self.subject:
            return []
        lines = self.wrap_plain(self.subject, x=MARGIN_LEFT + TAB, width=CONTENT_WIDTH - TAB)
        page_lines = int((self.cursor.bottom - self.cursor.top) / self.line_height + EPSILON)
        limit = max(0, page_lines - 1 - CONTINUATION_BODY_LINES)
        if len(lines) > limit:
            logger.debug('Continuation header cut from %d to %d line(s)', len(lines), limit)
        return lines[:limit]

    def _paint_continuation_header(self) -> None:
        lines = self.continuation_header_lines()
        if not lines:
            return
        self.text('Subj:', MARGIN_LEFT)
        for line in lines:
            self.draw_line(line.placed(self.cursor.y))
            self.advance()
        self.advance()

    def finish(self) -> list[Page]:
        page_number_y = PAGE_NUMBER_Y_WITH_BANNER if self.classification else PAGE_NUMBER_Y
        for page in self.pages:
            if page.number > 1:
                page.ops.append(
                    DrawText(
                        text=str(page.number),
                        x=PAGE_WIDTH / 2,
                        y=page_number_y,
                        font=self.font.normal,
                        size=self.font_size,
                        align='center',
                    )
                )
            if self.classification:
                page.ops.append(
                    DrawText(
                        text=self.classification,
                        x=PAGE_WIDTH / 2,
                        y=CLASSIFICATION_BOTTOM_Y,
                        font=self.font.bold,
                        size=self.font_size,
                        align='center',
                    )
                )
        return self.pages
