from __future__ import annotations

import re
from datetime import date

MONTHS = ['jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec']
MONTHS_FULL = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]

_NUMERIC_MDY = re.compile(r'^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$')
_NUMERIC_YMD = re.compile(r'^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$')


def _month_pattern(index: int) -> str:
    return f'({MONTHS[index]}|{MONTHS_FULL[index]})'


def _year(token: str) -> int:
    return int('20' + token) if len(token) == 2 else int(token)


def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def naval_date(value: date) -> str:
    """DD Mon YY, e.g. 05 Mar 24."""
    return f'{value.day:02d} {MONTHS[value.month - 1].capitalize()} {value.year % 100:02d}'


def _parse_date(token: str, today: date) -> date | None:
    if token in ('today', 'now'):
        return today

    match = _NUMERIC_MDY.match(token)
    if match:
        return _build_date(_year(match.group(3)), int(match.group(1)), int(match.group(2)))

    match = _NUMERIC_YMD.match(token)
    if match:
        return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    for index in range(12):
        month = _month_pattern(index)
        match = re.search(rf'{month}\s+(\d{{1,2}})[,\s]+(\d{{2,4}})', token)
        if match:
            return _build_date(_year(match.group(3)), index + 1, int(match.group(2)))
        match = re.search(rf'(\d{{1,2}})\s+{month}[,\s]+(\d{{2,4}})', token)
        if match:
            return _build_date(_year(match.group(3)), index + 1, int(match.group(1)))
    return None


def format_date_value(value: str | None, today: date | None = None) -> str | None:
    """Normalize a loosely written date to naval format; None when unparseable."""
    token = str(value or '').strip().lower()
    if not token:
        return None
    parsed = _parse_date(token, today or date.today())
    if parsed is None:
        return None
    return naval_date(parsed)


def today_formatted(today: date | None = None) -> str:
    return naval_date(today or date.today())


def generate_filename(subject: str | None, extension: str) -> str:
    token = str(subject or '').strip()
    if token:
        return re.sub(r'[^a-z0-9]+', '_', token.lower())[:30] + '.' + extension
    return 'naval_letter.' + extension
