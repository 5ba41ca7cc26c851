from __future__ import annotations

import base64
import re

import pytest
from reportlab.pdfbase import pdfmetrics

from conftest import distinct_words, make_letter, words
from navletter.layout.engine import (
    BreakDecision,
    KeepTogetherPolicy,
    plan_paragraph_break,
    render_document,
    truncate_subject,
)
from navletter.layout.geometry import (
    CONTENT_BOTTOM,
    LABEL_GAP,
    LEVEL_INDENTS,
    MARGIN_LEFT,
    PAGE_NUMBER_Y_WITH_BANNER,
    SENDER_X,
    SIGNATURE_X,
    SUBJECT_GAP,
    DrawImage,
)
from navletter.types import ParagraphLevel


POLICY = KeepTogetherPolicy()


def _width(text: str, font: str = 'Times-Roman') -> float:
    return pdfmetrics.stringWidth(text, font, 12)


def _texts(result):
    return [op for page in result.pages for op in page.texts()]


def _find(result, text):
    return [op for op in _texts(result) if op.text == text]


def _plan(total, here, fresh=40, last=False, end=0):
    return plan_paragraph_break(
        total_lines=total,
        lines_here=here,
        fresh_capacity=fresh,
        is_last=last,
        end_lines=end,
        policy=POLICY,
    )


# Break planning


def test_plan_fits_whole():
    assert _plan(5, 10) == BreakDecision()


def test_plan_pushes_when_too_few_lines_stay():
    assert _plan(10, 1) == BreakDecision(push_whole=True)


def test_plan_pushes_when_too_few_lines_carry():
    assert _plan(10, 9) == BreakDecision(push_whole=True)


def test_plan_splits_normally():
    assert _plan(10, 5) == BreakDecision()


def test_plan_at_page_top_keeps_two_lines_for_next_page():
    assert _plan(41, 40, fresh=40) == BreakDecision(break_before=39)


def test_plan_multi_page_avoids_single_last_line():
    # 2 here, 40 on the next page, 1 left for the third page
    assert _plan(43, 2, fresh=40) == BreakDecision(break_before=41)


def test_plan_short_last_paragraph_moves_with_end_block():
    assert _plan(4, 6, last=True, end=5) == BreakDecision(push_whole=True)


def test_plan_long_last_paragraph_keeps_three_lines_with_end_block():
    assert _plan(10, 12, last=True, end=5) == BreakDecision(break_before=7)


def test_plan_last_paragraph_room_for_end_block_on_next_page():
    assert _plan(30, 20, last=True, end=5) == BreakDecision()


def test_plan_last_paragraph_tail_moves_when_end_block_cannot_follow():
    # 20 here, 38 carried; 38 + 5 does not fit a fresh page of 40
    assert _plan(58, 20, last=True, end=5) == BreakDecision(break_before=55)


def test_plan_uses_configured_thresholds():
    strict = KeepTogetherPolicy(min_lines_on_page=4, min_lines_to_carry=4)
    decision = plan_paragraph_break(
        total_lines=10, lines_here=3, fresh_capacity=40, is_last=False, end_lines=0, policy=strict
    )
    assert decision.push_whole


def test_policy_from_settings(isolated_settings):
    policy = KeepTogetherPolicy.from_settings(isolated_settings)
    assert policy == KeepTogetherPolicy()


# Header block


def test_header_block_order_and_positions():
    data = make_letter(via=['Commanding General'], references=['MCO 1500.52D'], enclosures=['Roster'])
    result = render_document(data)
    page = result.pages[0]
    texts = [op.text for op in page.texts()]
    for label in ('From:', 'To:', 'Via:', 'Subj:', 'Ref:', 'Encl:', '1.'):
        assert label in texts
    order = [texts.index(label) for label in ('1500', 'From:', 'To:', 'Via:', 'Subj:', 'Ref:', 'Encl:', '1.')]
    assert order == sorted(order)

    ssic = _find(result, '1500')[0]
    assert ssic.x == SENDER_X
    subject = [op for op in page.texts() if op.text == 'QUARTERLY TRAINING REPORT']
    assert subject and subject[0].x == MARGIN_LEFT + 45


def test_single_via_is_not_numbered():
    result = render_document(make_letter(via=['Commanding General']))
    assert _find(result, 'Commanding General')


def test_multiple_vias_are_numbered():
    result = render_document(make_letter(via=['First', 'Second']))
    assert _find(result, '(1)  First')
    assert _find(result, '(2)  Second')


def test_references_continue_past_z():
    refs = [f'MCO 1500.{i}' for i in range(27)]
    result = render_document(make_letter(references=refs))
    texts = [op.text for op in _texts(result)]
    assert len(_find(result, 'Ref:')) == 1
    assert '(a)  MCO 1500.0' in texts
    assert '(z)  MCO 1500.25' in texts
    assert '(aa)  MCO 1500.26' in texts


def test_memorandum_and_endorsement_headings():
    memo = render_document(make_letter(kind='memorandum'))
    assert _find(memo, 'MEMORANDUM')[0].align == 'center'

    endorsement = render_document(
        make_letter(kind='endorsement', endorse_number='second', endorse_ref='CO ltr 1500 of 2 Jan 24',
                    endorse_action='Forwarded, recommending approval')
    )
    texts = [op.text for op in _texts(endorsement)]
    assert 'SECOND ENDORSEMENT on CO ltr 1500 of 2 Jan 24' in texts
    assert '1.  Forwarded, recommending approval.' in texts


def test_letterhead_pushes_content_down(caplog):
    data = make_letter(
        use_letterhead=True,
        unit_name='1st Battalion',
        unit_address='Box 1\nCamp Pendleton',
        seal_data='data:image/png;base64,@@@',
    )
    result = render_document(data)
    name = _find(result, '1ST BATTALION')[0]
    assert name.align == 'center' and name.size == 10
    assert not [op for op in result.pages[0].ops if isinstance(op, DrawImage)]
    assert _find(result, '1500')[0].y >= 130
    assert 'not valid base64' in caplog.text


def test_valid_seal_is_placed_in_corner():
    seal = base64.b64encode(b'not really an image').decode()
    result = render_document(make_letter(use_letterhead=True, seal_data=seal))
    images = [op for op in result.pages[0].ops if isinstance(op, DrawImage)]
    assert [(op.x, op.y, op.width, op.height) for op in images] == [(36.0, 36.0, 72.0, 72.0)]


# Paragraphs


def test_label_and_first_line_positions():
    result = render_document(make_letter([{'level': 'top', 'text': words(60)}]))
    label = _find(result, '1.')[0]
    assert label.x == MARGIN_LEFT
    same_row = [op for op in result.pages[0].texts() if op.y == label.y and op.text != '1.']
    assert same_row[0].x == pytest.approx(MARGIN_LEFT + _width('1.') + LABEL_GAP)
    next_row = [op for op in result.pages[0].texts() if op.y == label.y + 14]
    assert next_row and next_row[0].x == MARGIN_LEFT


def test_nested_levels_are_indented():
    paragraphs = [
        {'level': 'top', 'text': 'Top.'},
        {'level': 'sub', 'text': 'Sub.'},
        {'level': 'subsub', 'text': 'Subsub.'},
        {'level': 'subsubsub', 'text': 'Deepest.'},
    ]
    result = render_document(make_letter(paragraphs))
    assert _find(result, 'a.')[0].x == MARGIN_LEFT + LEVEL_INDENTS[ParagraphLevel.sub]
    assert _find(result, '(1)')[0].x == MARGIN_LEFT + LEVEL_INDENTS[ParagraphLevel.subsub]
    assert _find(result, '(a)')[0].x == MARGIN_LEFT + LEVEL_INDENTS[ParagraphLevel.subsubsub]


def test_unknown_level_uses_deepest_indent(caplog):
    result = render_document(make_letter([{'level': 'top', 'text': 'A.'}, {'level': 'bogus', 'text': 'B.'}]))
    assert _find(result, '(a)')[0].x == MARGIN_LEFT + LEVEL_INDENTS[ParagraphLevel.subsubsub]
    assert 'Unknown paragraph level' in caplog.text


def test_subject_sits_inline_with_body():
    paragraphs = [{'level': 'top', 'subject': 'Purpose.', 'text': 'To report training.'}]
    result = render_document(make_letter(paragraphs))
    text_x = MARGIN_LEFT + _width('1.') + LABEL_GAP
    subject = _find(result, 'Purpose.')[0]
    assert subject.x == pytest.approx(text_x)

    underline = result.pages[0].lines()[0]
    assert underline.x1 == pytest.approx(text_x)
    assert underline.x2 == pytest.approx(text_x + _width('Purpose.'))
    assert underline.y1 == subject.y + 2

    body = _find(result, 'To report training.')[0]
    assert body.y == subject.y
    assert body.x == pytest.approx(text_x + _width('Purpose.') + SUBJECT_GAP)


def test_truncate_subject():
    assert truncate_subject('Short', 50, 100) == 'Short'
    assert truncate_subject('x' * 100, 200, 100) == 'x' * 47 + '...'


def test_inline_styles_reach_draw_ops():
    result = render_document(make_letter([{'level': 'top', 'text': 'Plain <b>bold</b> <u>under</u>'}]))
    bold = _find(result, 'bold')[0]
    assert bold.font == 'Times-Bold'
    rules = result.pages[0].lines()
    under = _find(result, 'under')[0]
    assert any(rule.x1 == under.x and rule.y1 == under.y + 2 for rule in rules)


def test_portion_marks_prefix_label():
    paragraphs = [{'level': 'top', 'text': 'Marked.', 'portion_mark': 'U'}]
    result = render_document(make_letter(paragraphs, portion_marking_enabled=True))
    mark = _find(result, '(U) ')[0]
    assert mark.x == MARGIN_LEFT and mark.font == 'Times-Bold'
    assert _find(result, '1.')[0].x == pytest.approx(MARGIN_LEFT + _width('(U) ', 'Times-Bold'))


def test_double_spacing_applied_to_body():
    result = render_document(make_letter([{'level': 'top', 'text': 'One. Two.'}]))
    assert _find(result, 'One.  Two.')


# Pagination


def test_layout_is_deterministic():
    data = make_letter([{'level': 'top', 'text': words(900)}, {'level': 'sub', 'text': words(200)}])
    first = render_document(data)
    second = render_document(data)
    assert [page.ops for page in first.pages] == [page.ops for page in second.pages]


def test_no_text_below_bottom_margin():
    result = render_document(make_letter([{'level': 'top', 'text': words(2000)}], copies=['File']))
    for page in result.pages:
        body = [op for op in page.texts() if op.y < PAGE_NUMBER_Y_WITH_BANNER]
        assert all(op.y <= CONTENT_BOTTOM for op in body)


def test_long_paragraph_continues_with_subject_header():
    result = render_document(make_letter([{'level': 'top', 'text': words(1200)}]))
    assert result.page_count >= 2
    second = result.pages[1].texts()
    assert second[0].text == 'Subj:'
    assert any(op.text == 'QUARTERLY TRAINING REPORT' for op in second)
    assert any(op.text == '2' for op in second)


def test_non_final_paragraphs_never_strand_single_lines():
    for filler in range(5, 420, 23):
        paragraphs = [
            {'level': 'top', 'text': words(filler)},
            {'level': 'sub', 'text': words(160)},
            {'level': 'sub', 'text': words(45)},
            {'level': 'top', 'text': words(30)},
        ]
        result = render_document(make_letter(paragraphs))
        for placement in result.paragraphs[:-1]:
            pages = sorted(set(placement.row_pages))
            if len(pages) < 2:
                continue
            for page in pages:
                assert placement.lines_on_page(page) >= 2, (filler, placement.label, placement.row_pages)


def test_signature_stays_with_last_body_line():
    for size in range(10, 400, 17):
        paragraphs = [{'level': 'top', 'text': words(350)}, {'level': 'top', 'text': words(size)}]
        result = render_document(make_letter(paragraphs, by_direction=True, copies=['CG, 1st MarDiv']))
        assert result.signature_page == result.paragraphs[-1].last_page, size


def test_four_page_paragraph_keeps_signature_on_final_page():
    result = render_document(make_letter([{'level': 'top', 'text': words(2600)}]))
    last = result.paragraphs[-1]
    assert result.page_count >= 4
    assert result.signature_page == last.last_page == result.page_count
    assert last.lines_on_page(last.last_page) >= 2


def _drawn_tokens(result, prefix='w'):
    pattern = re.compile(rf'{prefix}\d+')
    return [
        token
        for op in _texts(result)
        for token in op.text.split()
        if pattern.fullmatch(token)
    ]


def _assert_body_inside_margins(result, prefix='w'):
    pattern = re.compile(rf'{prefix}\d+')
    for op in _texts(result):
        if any(pattern.fullmatch(token) for token in op.text.split()):
            assert op.y <= CONTENT_BOTTOM + 1e-6, (op.text, op.y)


@pytest.mark.parametrize('count', [1500, 2600, 4000])
def test_multi_page_paragraph_draws_each_word_once(count):
    text = distinct_words(count)
    result = render_document(make_letter([{'level': 'top', 'text': text}]))
    assert result.page_count >= 3
    assert _drawn_tokens(result) == text.split()
    _assert_body_inside_margins(result)


def test_hard_breaks_across_pages_keep_text():
    rows = [f'w{i}' for i in range(200)]
    text = '\n'.join(row + ('\n' if i % 9 == 8 else '') for i, row in enumerate(rows))
    result = render_document(make_letter([{'level': 'top', 'text': text}]))
    assert result.page_count >= 4
    assert _drawn_tokens(result) == rows
    _assert_body_inside_margins(result)


def test_subject_paragraph_across_pages_keeps_text():
    text = distinct_words(1800, prefix='b')
    paragraphs = [
        {'level': 'top', 'subject': 'Purpose.', 'text': text},
        {'level': 'top', 'subject': 'Action.', 'text': distinct_words(400, prefix='c')},
    ]
    result = render_document(make_letter(paragraphs))
    assert _drawn_tokens(result, 'b') == text.split()
    assert _drawn_tokens(result, 'c') == distinct_words(400, prefix='c').split()
    assert len(_find(result, 'Purpose.')) == 1


def test_large_font_paragraph_keeps_text():
    text = distinct_words(900)
    result = render_document(make_letter([{'level': 'top', 'text': text}], font_size=40))
    assert result.page_count > 5
    assert _drawn_tokens(result) == text.split()
    _assert_body_inside_margins(result)


def test_long_subject_header_still_leaves_room_for_body():
    text = distinct_words(400)
    result = render_document(make_letter([{'level': 'top', 'text': text}], subject=words(900)))
    assert _drawn_tokens(result) == text.split()
    _assert_body_inside_margins(result)
    assert result.page_count < 40


def test_end_block_layout():
    result = render_document(make_letter(by_direction=True, copies=['CG, 1st MarDiv', 'File']))
    signature = _find(result, 'J. M. SMITH')[0]
    assert signature.x == SIGNATURE_X
    by_direction = _find(result, 'By direction')[0]
    assert by_direction.y == signature.y + 14
    copy_to = _find(result, 'Copy to:')[0]
    assert copy_to.x == MARGIN_LEFT
    assert _find(result, '(1)  CG, 1st MarDiv')
    assert _find(result, '(2)  File')


def test_paragraph_without_text_is_dropped():
    result = render_document(make_letter([{'level': 'top', 'text': '  '}, {'level': 'top', 'text': 'Kept.'}]))
    assert _find(result, '1.')
    assert not _find(result, '2.')
