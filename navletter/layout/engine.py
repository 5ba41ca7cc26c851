from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from ..config import Settings
from ..types import DocumentData, DocumentKind, Paragraph, ParagraphLevel
from .geometry import (
    CONTENT_RIGHT,
    CONTENT_WIDTH,
    EPSILON,
    LABEL_GAP,
    LETTERHEAD_MIN_Y,
    LEVEL_INDENTS,
    MARGIN_LEFT,
    MIN_TRAILING_WIDTH,
    PAGE_WIDTH,
    SEAL_BOX,
    SENDER_X,
    SIGNATURE_X,
    SUBJECT_GAP,
    TAB,
    Page,
    PageFlow,
)
from .numbering import NumberingState, enclosure_label, reference_label
from .text import ensure_double_spaces, parse_to_runs, resolve_font
from .wrap import LayoutLine


logger = logging.getLogger(__name__)

ELLIPSIS = '...'
SIGNATURE_GAP_LINES = 4
COPY_TO_GAP_LINES = 2


@dataclass(frozen=True)
class KeepTogetherPolicy:
    min_lines_on_page: int = 2
    min_lines_to_carry: int = 2
    end_block_keep_lines: int = 3
    short_paragraph_lines: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> 'KeepTogetherPolicy':
        return cls(
            min_lines_on_page=settings.min_lines_on_page,
            min_lines_to_carry=settings.min_lines_to_carry,
            end_block_keep_lines=settings.end_block_keep_lines,
            short_paragraph_lines=settings.short_paragraph_lines,
        )


@dataclass(frozen=True)
class BreakDecision:
    push_whole: bool = False
    break_before: int | None = None


def plan_paragraph_break(
    *,
    total_lines: int,
    lines_here: int,
    fresh_capacity: int,
    is_last: bool,
    end_lines: int,
    policy: KeepTogetherPolicy,
) -> BreakDecision:
    """Decide how a paragraph of ``total_lines`` is split over the pages.

    ``lines_here`` is how many lines still fit on the current page and
    ``fresh_capacity`` how many fit on an empty continuation page.
    ``break_before`` is the row index that must start a new page.
    """
    lines_here = max(0, lines_here)
    fresh_capacity = max(1, fresh_capacity)
    keep = min(policy.end_block_keep_lines, total_lines)
    at_top = lines_here >= fresh_capacity
    with_end = is_last and end_lines > 0 and keep + end_lines <= fresh_capacity

    if total_lines <= lines_here:
        if not with_end or total_lines + end_lines <= lines_here:
            return BreakDecision()
        # Paragraph fits but the end block would land alone on the next page.
        if not at_top and (
            total_lines <= policy.short_paragraph_lines or total_lines - keep < policy.min_lines_on_page
        ):
            return BreakDecision(push_whole=True)
        return BreakDecision(break_before=total_lines - keep)

    if lines_here < policy.min_lines_on_page:
        return BreakDecision(push_whole=True)

    carried = total_lines - lines_here
    if carried < policy.min_lines_to_carry:
        if at_top and total_lines - policy.min_lines_to_carry >= policy.min_lines_on_page:
            return BreakDecision(break_before=total_lines - policy.min_lines_to_carry)
        return BreakDecision(push_whole=True)

    # Lines landing on the last page of a paragraph running over several pages.
    last_chunk = (carried - 1) % fresh_capacity + 1
    break_before = None
    if carried > fresh_capacity and last_chunk < policy.min_lines_to_carry:
        break_before = total_lines - policy.min_lines_to_carry
        last_chunk = policy.min_lines_to_carry

    if not is_last or end_lines == 0 or last_chunk + end_lines <= fresh_capacity:
        return BreakDecision(break_before=break_before)
    if carried <= keep and not at_top:
        return BreakDecision(push_whole=True)
    if not with_end:
        # End block is taller than what a fresh page leaves; it runs over on its own.
        return BreakDecision(break_before=break_before)
    return BreakDecision(break_before=total_lines - keep)


@dataclass
class ParagraphPlacement:
    index: int
    label: str
    level: ParagraphLevel
    row_pages: list[int] = field(default_factory=list)

    @property
    def first_page(self) -> int:
        return self.row_pages[0] if self.row_pages else 0

    @property
    def last_page(self) -> int:
        return self.row_pages[-1] if self.row_pages else 0

    def lines_on_page(self, page: int) -> int:
        return sum(1 for value in self.row_pages if value == page)


@dataclass
class LayoutResult:
    pages: list[Page]
    paragraphs: list[ParagraphPlacement] = field(default_factory=list)
    signature_page: int | None = None

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass
class _ParagraphPlan:
    index: int
    paragraph: Paragraph
    level: ParagraphLevel
    label: str
    portion: str
    label_x: float
    text_x: float
    subject_text: str
    subject_width: float
    body_first_x: float
    body_first_width: float
    subject_row: bool
    body_lines: list[LayoutLine]

    @property
    def total_lines(self) -> int:
        return len(self.body_lines) + (1 if self.subject_row else 0)


def truncate_subject(subject: str, full_width: float, available: float) -> str:
    """Shorten by the width ratio applied to the character count."""
    if full_width <= available or full_width <= 0:
        return subject
    ratio = max(0.0, available) / full_width
    keep = max(1, int(len(subject) * ratio) - len(ELLIPSIS))
    return subject[:keep].rstrip() + ELLIPSIS


class LetterLayout:
    def __init__(self, data: DocumentData, *, policy: KeepTogetherPolicy | None = None):
        self.data = data
        self.policy = policy or KeepTogetherPolicy()
        self.font = resolve_font(data.font_family)
        self.font_size = float(data.font_size or 12)
        self.flow = PageFlow(
            font=self.font,
            font_size=self.font_size,
            classification=data.classification.banner,
            subject=data.subject_upper,
        )
        self.lh = self.flow.line_height
        self.placements: list[ParagraphPlacement] = []
        self.signature_page: int | None = None

    def render(self) -> LayoutResult:
        self._letterhead()
        self._sender_symbols()
        self._addressing()
        self._references()
        self._endorsement_action()
        self._paragraphs()
        self._end_block()
        pages = self.flow.finish()
        logger.debug('Laid out %d page(s)', len(pages))
        return LayoutResult(pages=pages, paragraphs=self.placements, signature_page=self.signature_page)

    # Header block

    def _letterhead(self) -> None:
        data = self.data
        flow = self.flow
        if data.use_letterhead:
            seal = data.seal_bytes()
            if seal is not None:
                x, y, width, height = SEAL_BOX
                flow.image(seal, x, y, width, height)
            if data.unit_name:
                name_size = max(self.font_size - 2, 8)
                flow.text(data.unit_name.upper(), PAGE_WIDTH / 2, bold=True, size=name_size, align='center')
                flow.y += name_size + 2
            address_size = max(self.font_size - 4, 7)
            for line in data.unit_address.split('\n'):
                if not line.strip():
                    continue
                flow.text(line.strip().upper(), PAGE_WIDTH / 2, size=address_size, align='center')
                flow.y += address_size + 2
            flow.y = max(flow.y, LETTERHEAD_MIN_Y)

        if data.kind is DocumentKind.memorandum:
            flow.text('MEMORANDUM', PAGE_WIDTH / 2, bold=True, align='center')
            flow.advance(2)

    def _sender_symbols(self) -> None:
        symbols = [value for value in (self.data.ssic, self.data.office_code, self.data.date) if value]
        for value in symbols:
            self.flow.text(value, SENDER_X)
            self.flow.advance()
        if symbols:
            self.flow.advance()

        if self.data.kind is DocumentKind.endorsement:
            heading = f'{self.data.endorse_number.upper()} ENDORSEMENT'
            if self.data.endorse_ref:
                heading = f'{heading} on {self.data.endorse_ref}'
            self._tabbed_block('', heading, bold=True, x=MARGIN_LEFT, width=CONTENT_WIDTH)
            self.flow.advance()

    def _tabbed_block(
        self,
        label: str,
        text: str,
        *,
        bold: bool = False,
        x: float = MARGIN_LEFT + TAB,
        width: float = CONTENT_WIDTH - TAB,
        keep: bool = False,
    ) -> None:
        flow = self.flow
        lines = flow.wrap_plain(text, x=x, width=width) if text else []
        if keep:
            flow.ensure_space(max(1, len(lines)) * self.lh)
        else:
            flow.ensure_space(self.lh)
        if label:
            flow.text(label, MARGIN_LEFT)
        if not lines:
            flow.advance()
            return
        for index, line in enumerate(lines):
            if index > 0:
                flow.ensure_space(self.lh)
            if bold:
                flow.text(line.text, line.x, bold=True)
            else:
                flow.draw_line(line.placed(flow.y))
            flow.advance()

    def _addressing(self) -> None:
        data = self.data
        self._tabbed_block('From:', data.from_)
        self._tabbed_block('To:', data.to)
        numbered = len(data.via) > 1
        for index, via in enumerate(data.via):
            text = f'({index + 1})  {via}' if numbered else via
            self._tabbed_block('Via:' if index == 0 else '', text)

        self.flow.advance()
        self.flow.ensure_space(self.lh * 2)
        self._tabbed_block('Subj:', data.subject_upper)

    def _references(self) -> None:
        data = self.data
        if data.references:
            self.flow.advance()
            for index, reference in enumerate(data.references):
                text = f'{reference_label(index)}  {reference}'
                self._tabbed_block('Ref:' if index == 0 else '', text, keep=True)
        if data.enclosures:
            self.flow.advance()
            for index, enclosure in enumerate(data.enclosures):
                text = f'{enclosure_label(index)}  {enclosure}'
                self._tabbed_block('Encl:' if index == 0 else '', text, keep=True)

    def _endorsement_action(self) -> None:
        if self.data.kind is not DocumentKind.endorsement or not self.data.endorse_action:
            return
        self.flow.advance()
        action = self.data.endorse_action.rstrip('.')
        self._tabbed_block('', f'1.  {action}.', x=MARGIN_LEFT, width=CONTENT_WIDTH)

    # Body

    def _end_block_height(self) -> float:
        height = 0.0
        if self.data.signature_name:
            height += self.lh * SIGNATURE_GAP_LINES
            if self.data.by_direction:
                height += self.lh
        if self.data.copies:
            height += self.lh * (COPY_TO_GAP_LINES - 1 + len(self.data.copies))
        return height

    def _plan(self, index: int, paragraph: Paragraph, state: NumberingState) -> _ParagraphPlan:
        flow = self.flow
        level = paragraph.depth
        label = state.label(level)

        portion = ''
        if self.data.portion_marking_enabled and paragraph.portion_mark:
            mark = paragraph.portion_mark
            portion = f'{mark} ' if mark.startswith('(') else f'({mark}) '
        indent = LEVEL_INDENTS[level]
        label_x = MARGIN_LEFT + indent + flow.measure(portion, bold=True)
        text_x = label_x + flow.measure(label) + LABEL_GAP
        first_width = CONTENT_RIGHT - text_x

        runs = parse_to_runs(ensure_double_spaces(paragraph.text))

        subject_text = ''
        subject_width = 0.0
        body_first_x = text_x
        body_first_width = first_width
        subject_row = False
        if level is ParagraphLevel.top and paragraph.subject:
            full_width = flow.measure(paragraph.subject)
            subject_text = truncate_subject(paragraph.subject, full_width, first_width)
            subject_width = flow.measure(subject_text)
            after_x = text_x + subject_width + SUBJECT_GAP
            trailing = CONTENT_RIGHT - after_x
            if runs and trailing >= MIN_TRAILING_WIDTH and after_x <= CONTENT_RIGHT - MIN_TRAILING_WIDTH:
                body_first_x = after_x
                body_first_width = trailing
            else:
                subject_row = True
                body_first_x = MARGIN_LEFT
                body_first_width = CONTENT_WIDTH

        wrapped = flow.wrapper.wrap(
            runs,
            first_x=body_first_x,
            first_width=body_first_width,
            cont_x=MARGIN_LEFT,
            cont_width=CONTENT_WIDTH,
        )
        return _ParagraphPlan(
            index=index,
            paragraph=paragraph,
            level=level,
            label=label,
            portion=portion,
            label_x=label_x,
            text_x=text_x,
            subject_text=subject_text,
            subject_width=subject_width,
            body_first_x=body_first_x,
            body_first_width=body_first_width,
            subject_row=subject_row,
            body_lines=wrapped.lines,
        )

    def _fresh_capacity(self) -> int:
        header = self.flow.continuation_header_lines()
        header_lines = len(header) + 1 if header else 0
        usable = self.flow.cursor.bottom - self.flow.cursor.top - header_lines * self.lh
        return max(1, int(math.floor(usable / self.lh + EPSILON)))

    def _paragraphs(self) -> None:
        paragraphs = self.data.paragraphs
        if not paragraphs:
            return
        end_lines = int(math.ceil(self._end_block_height() / self.lh - EPSILON)) if self.lh else 0
        fresh_capacity = self._fresh_capacity()
        state = NumberingState()
        last_index = len(paragraphs) - 1

        for index, paragraph in enumerate(paragraphs):
            probe = state.advance(paragraph.depth)
            plan = self._plan(index, paragraph, probe)
            if plan.total_lines == 0:
                logger.debug('Skipping empty paragraph %d', index)
                continue
            state = probe

            if not self.flow.at_page_top:
                self.flow.advance()

            decision = BreakDecision()
            for _ in range(2):
                decision = plan_paragraph_break(
                    total_lines=plan.total_lines,
                    lines_here=int(math.floor(self.flow.remaining / self.lh + EPSILON)),
                    fresh_capacity=fresh_capacity,
                    is_last=index == last_index,
                    end_lines=end_lines,
                    policy=self.policy,
                )
                if not decision.push_whole or self.flow.at_page_top:
                    break
                logger.debug('Moving paragraph %s to next page', plan.label)
                self.flow.break_page()

            self._draw_paragraph(plan, decision.break_before)

    def _draw_paragraph(self, plan: _ParagraphPlan, break_before: int | None) -> None:
        flow = self.flow
        placement = ParagraphPlacement(index=plan.index, label=plan.label, level=plan.level)
        self.placements.append(placement)

        if plan.portion:
            flow.text(plan.portion, MARGIN_LEFT + LEVEL_INDENTS[plan.level], bold=True)
        flow.text(plan.label, plan.label_x)
        if plan.subject_text:
            flow.text(plan.subject_text, plan.text_x)
            flow.rule(plan.text_x, plan.text_x + plan.subject_width)

        lines = list(plan.body_lines)
        offset = 1 if plan.subject_row else 0
        row = 0
        while row < offset + len(lines):
            if row > 0:
                page_before = flow.cursor.page
                flow.after_draw(flow.y)
                if row == break_before and flow.cursor.page == page_before and not flow.at_page_top:
                    flow.break_page()
                if flow.cursor.page != page_before and row >= offset:
                    # Blank rows from hard breaks are not carried to the top of a page.
                    while row - offset < len(lines) and lines[row - offset].is_blank:
                        del lines[row - offset]
                    if row - offset >= len(lines):
                        break
            if row >= offset:
                flow.draw_line(lines[row - offset].placed(flow.y))
            placement.row_pages.append(flow.cursor.page)
            flow.y += self.lh
            row += 1

    # End block

    def _end_block(self) -> None:
        data = self.data
        flow = self.flow
        height = self._end_block_height()
        if height <= 0:
            return
        if flow.ensure_space(height):
            logger.debug('End block moved to page %d', flow.cursor.page)

        if data.signature_name:
            if not flow.at_page_top:
                flow.advance(SIGNATURE_GAP_LINES - 1)
            flow.ensure_space(self.lh)
            flow.text(data.signature_upper, SIGNATURE_X)
            self.signature_page = flow.cursor.page
            flow.advance()
            if data.by_direction:
                flow.ensure_space(self.lh)
                flow.text('By direction', SIGNATURE_X)
                flow.advance()

        if data.copies:
            if not flow.at_page_top:
                flow.advance(COPY_TO_GAP_LINES - 1)
            numbered = len(data.copies) > 1
            for index, copy in enumerate(data.copies):
                flow.ensure_space(self.lh)
                if index == 0:
                    flow.text('Copy to:', MARGIN_LEFT)
                text = f'({index + 1})  {copy}' if numbered else copy
                flow.text(text, MARGIN_LEFT + TAB)
                flow.advance()


def render_document(data: DocumentData, *, policy: KeepTogetherPolicy | None = None) -> LayoutResult:
    return LetterLayout(data, policy=policy).render()
