from __future__ import annotations

import pytest

from navletter.config import get_settings
from navletter.types import DocumentData


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv('NAVLETTER_DATA_DIR', str(tmp_path / 'data'))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


WORDS = (
    'the command will conduct quarterly training on safety procedures for all hands '
    'and report completion to the regiment no later than the end of each quarter'
).split()


def words(count: int) -> str:
    return ' '.join(WORDS[i % len(WORDS)] for i in range(count))


def distinct_words(count: int, prefix: str = 'w') -> str:
    """Unique tokens, so dropped or repeated text shows up in comparisons."""
    return ' '.join(f'{prefix}{i}' for i in range(count))


def make_letter(paragraphs=None, **overrides) -> DocumentData:
    payload = {
        'ssic': '1500',
        'office_code': 'S-3',
        'date': '15 Jan 24',
        'from': 'Commanding Officer, 1st Battalion, 5th Marines',
        'to': 'Commanding Officer, 5th Marine Regiment',
        'subject': 'Quarterly training report',
        'signature_name': 'J. M. Smith',
        'paragraphs': paragraphs if paragraphs is not None else [{'level': 'top', 'text': 'Body text.'}],
    }
    payload.update(overrides)
    return DocumentData.model_validate(payload)
