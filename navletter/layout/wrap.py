from __future__ import annotations

from dataclasses import dataclass, field, replace

from .text import FontSpec, StyledRun, measure_run, measure_width


@dataclass(frozen=True)
class LineSegment:
    text: str
    x: float
    width: float
    bold: bool = False
    italic: bool = False
    underline: bool = False


@dataclass(frozen=True)
class LayoutLine:
    segments: tuple[LineSegment, ...]
    x: float
    width: float
    first: bool
    y: float = 0.0

    @property
    def text(self) -> str:
        return ''.join(segment.text for segment in self.segments)

    @property
    def is_blank(self) -> bool:
        return not self.segments

    def placed(self, y: float) -> 'LayoutLine':
        return replace(self, y=y)


@dataclass
class WrapResult:
    lines: list[LayoutLine]
    final_y: float

    @property
    def line_count(self) -> int:
        return len(self.lines)


_WORD = 'word'
_SPACE = 'space'
_BREAK = 'break'


@dataclass
class _Token:
    kind: str
    pieces: list[tuple[int, int, int]] = field(default_factory=list)


def _char_kind(char: str) -> str:
    if char == '\n':
        return _BREAK
    if char.isspace():
        return _SPACE
    return _WORD


def _tokenize(runs: list[StyledRun]) -> list[_Token]:
    tokens: list[_Token] = []
    for run_index, run in enumerate(runs):
        text = run.text
        for offset, char in enumerate(text):
            kind = _char_kind(char)
            if kind == _BREAK:
                tokens.append(_Token(_BREAK, [(run_index, offset, offset + 1)]))
                continue
            if tokens and tokens[-1].kind == kind:
                pieces = tokens[-1].pieces
                last_run, start, stop = pieces[-1]
                if last_run == run_index and stop == offset:
                    pieces[-1] = (run_index, start, offset + 1)
                else:
                    pieces.append((run_index, offset, offset + 1))
                continue
            tokens.append(_Token(kind, [(run_index, offset, offset + 1)]))
    return tokens


class RichTextWrapper:
    """Greedy word wrapper over styled runs for one font and size."""

    def __init__(self, font: FontSpec, size: float, line_height: float):
        self.font = font
        self.size = float(size)
        self.line_height = float(line_height)

    def _piece_text(self, runs: list[StyledRun], piece: tuple[int, int, int]) -> str:
        run_index, start, stop = piece
        return runs[run_index].text[start:stop]

    def _token_width(self, runs: list[StyledRun], token: _Token) -> float:
        total = 0.0
        for piece in token.pieces:
            run = runs[piece[0]]
            text = self._normalize(self._piece_text(runs, piece), token.kind)
            total += measure_width(text, font=self.font, size=self.size, bold=run.bold, italic=run.italic)
        return total

    @staticmethod
    def _normalize(text: str, kind: str) -> str:
        if kind == _SPACE:
            return ' ' * len(text)
        return text

    def _build_line(
        self,
        runs: list[StyledRun],
        tokens: list[_Token],
        *,
        x: float,
        first: bool,
    ) -> LayoutLine:
        merged: list[StyledRun] = []
        for token in tokens:
            for piece in token.pieces:
                run = runs[piece[0]]
                text = self._normalize(self._piece_text(runs, piece), token.kind)
                if merged and merged[-1].same_style(run):
                    merged[-1] = merged[-1].with_text(merged[-1].text + text)
                else:
                    merged.append(run.with_text(text))

        segments: list[LineSegment] = []
        cursor = 0.0
        for run in merged:
            width = measure_run(run, font=self.font, size=self.size)
            segments.append(
                LineSegment(
                    text=run.text,
                    x=cursor,
                    width=width,
                    bold=run.bold,
                    italic=run.italic,
                    underline=run.underline,
                )
            )
            cursor += width
        return LayoutLine(segments=tuple(segments), x=x, width=cursor, first=first)

    def wrap(
        self,
        runs: list[StyledRun],
        *,
        first_x: float,
        first_width: float,
        cont_x: float,
        cont_width: float,
        start_y: float = 0.0,
    ) -> WrapResult:
        lines: list[LayoutLine] = []
        current: list[_Token] = []
        pending_space: _Token | None = None
        width = 0.0

        def _emit() -> None:
            nonlocal current, pending_space, width
            is_first = not lines
            lines.append(
                self._build_line(
                    runs,
                    current,
                    x=first_x if is_first else cont_x,
                    first=is_first,
                )
            )
            current = []
            pending_space = None
            width = 0.0

        for token in _tokenize(runs):
            if token.kind == _BREAK:
                _emit()
                continue

            if token.kind == _SPACE:
                if current:
                    pending_space = token
                continue

            available = first_width if not lines else cont_width
            word_width = self._token_width(runs, token)
            space_width = self._token_width(runs, pending_space) if (current and pending_space) else 0.0
            if current and width + space_width + word_width > available:
                _emit()
                space_width = 0.0
            if current and pending_space is not None:
                current.append(pending_space)
                width += space_width
            pending_space = None
            current.append(token)
            width += word_width

        if current:
            _emit()

        while lines and lines[-1].is_blank:
            lines.pop()

        placed = [line.placed(start_y + i * self.line_height) for i, line in enumerate(lines)]
        return WrapResult(lines=placed, final_y=start_y + len(placed) * self.line_height)

    def measure_height(
        self,
        runs: list[StyledRun],
        *,
        first_width: float,
        cont_width: float,
    ) -> float:
        result = self.wrap(runs, first_x=0.0, first_width=first_width, cont_x=0.0, cont_width=cont_width)
        return result.final_y
