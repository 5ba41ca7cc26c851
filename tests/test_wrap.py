from __future__ import annotations

import pytest

from conftest import distinct_words, words
from navletter.layout.text import DEFAULT_FONT, StyledRun, measure_width
from navletter.layout.wrap import RichTextWrapper


@pytest.fixture
def wrapper():
    return RichTextWrapper(DEFAULT_FONT, 12, 14)


def _wrap(wrapper, runs, width=200.0, **kwargs):
    return wrapper.wrap(runs, first_x=100.0, first_width=width, cont_x=72.0, cont_width=width, **kwargs)


def test_lines_fit_available_width(wrapper):
    result = _wrap(wrapper, [StyledRun(words(80))], width=180.0)
    assert result.line_count > 3
    for line in result.lines:
        assert line.width <= 180.0 + 1e-6
        assert not line.text.startswith(' ')
        assert not line.text.endswith(' ')


def test_first_and_continuation_positions(wrapper):
    result = _wrap(wrapper, [StyledRun(words(40))])
    assert result.lines[0].x == 100.0
    assert result.lines[0].first
    assert all(line.x == 72.0 for line in result.lines[1:])
    assert not any(line.first for line in result.lines[1:])
    assert [line.y for line in result.lines] == [14.0 * i for i in range(result.line_count)]
    assert result.final_y == 14.0 * result.line_count


def test_explicit_breaks(wrapper):
    result = _wrap(wrapper, [StyledRun('one\ntwo\n\nthree\n')], width=400.0)
    assert [line.text for line in result.lines] == ['one', 'two', '', 'three']
    assert result.lines[2].is_blank


def test_overlong_word_is_placed_alone(wrapper):
    long_word = 'x' * 120
    result = _wrap(wrapper, [StyledRun(f'a {long_word} b')], width=100.0)
    assert [line.text for line in result.lines] == ['a', long_word, 'b']


def test_styled_segments_keep_offsets(wrapper):
    runs = [StyledRun('plain '), StyledRun('bold', bold=True), StyledRun(' tail', underline=True)]
    result = _wrap(wrapper, runs, width=400.0)
    assert result.line_count == 1
    segments = result.lines[0].segments
    assert [segment.text for segment in segments] == ['plain ', 'bold', ' tail']
    assert segments[1].bold and segments[2].underline
    assert segments[1].x == pytest.approx(measure_width('plain ', font=DEFAULT_FONT, size=12))


def test_double_space_is_preserved(wrapper):
    result = _wrap(wrapper, [StyledRun('End.  Next')], width=400.0)
    assert result.lines[0].text == 'End.  Next'


def test_wrapped_lines_keep_every_word_in_order(wrapper):
    text = distinct_words(300)
    result = _wrap(wrapper, [StyledRun(text)], width=150.0)
    assert ' '.join(line.text for line in result.lines).split() == text.split()


def test_empty_runs_wrap_to_nothing(wrapper):
    result = _wrap(wrapper, [])
    assert result.lines == []
    assert wrapper.measure_height([], first_width=100.0, cont_width=100.0) == 0.0


def test_measure_height_counts_lines(wrapper):
    runs = [StyledRun(words(60))]
    lines = _wrap(wrapper, runs).line_count
    assert wrapper.measure_height(runs, first_width=200.0, cont_width=200.0) == 14.0 * lines
