from __future__ import annotations

from dataclasses import dataclass, replace

from ..types import ParagraphLevel


LETTERS = 'abcdefghijklmnopqrstuvwxyz'


def letter_sequence(index: int) -> str:
    """0 -> 'a', 25 -> 'z', 26 -> 'aa', 27 -> 'ab', ... 701 -> 'zz', 702 -> 'aaa'."""
    if index < 0:
        raise ValueError(f'letter index must be >= 0, got {index}')
    letters = ''
    value = index
    while True:
        letters = LETTERS[value % 26] + letters
        value = value // 26 - 1
        if value < 0:
            return letters


@dataclass(frozen=True)
class NumberingState:
    top: int = 0
    sub: int = 0
    subsub: int = 0
    subsubsub: int = 0

    def advance(self, level: ParagraphLevel) -> 'NumberingState':
        if level is ParagraphLevel.top:
            return NumberingState(top=self.top + 1)
        if level is ParagraphLevel.sub:
            return replace(self, sub=self.sub + 1, subsub=0, subsubsub=0)
        if level is ParagraphLevel.subsub:
            return replace(self, subsub=self.subsub + 1, subsubsub=0)
        return replace(self, subsubsub=self.subsubsub + 1)

    def label(self, level: ParagraphLevel) -> str:
        if level is ParagraphLevel.top:
            return f'{self.top}.'
        if level is ParagraphLevel.sub:
            return f'{letter_sequence(max(0, self.sub - 1))}.'
        if level is ParagraphLevel.subsub:
            return f'({self.subsub})'
        return f'({letter_sequence(max(0, self.subsubsub - 1))})'


def reference_label(index: int) -> str:
    return f'({letter_sequence(index)})'


def enclosure_label(index: int) -> str:
    return f'({index + 1})'
