from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from typing import Any

from .layout.engine import KeepTogetherPolicy
from .render.pdf_backend import render_pdf
from .types import DocumentData


logger = logging.getLogger(__name__)

BATCH_COLUMNS = ['name', 'rank', 'unit', 'from', 'to', 'subject', 'date', 'ssic', 'reason', 'period']

_PLACEHOLDER = re.compile(r'\{\{(\w+)\}\}')

# CSV column -> DocumentData field
_DIRECT_FIELDS = {
    'to': 'to',
    'from': 'from_',
    'subject': 'subject',
    'date': 'date',
    'ssic': 'ssic',
}


def read_batch_rows(csv_text: str) -> list[dict[str, str]]:
    """Parse CSV rows keyed by lower-cased header; rows without name or to are dropped."""
    reader = csv.reader(io.StringIO(csv_text.lstrip('\ufeff')))
    records = [record for record in reader if any(cell.strip() for cell in record)]
    if len(records) < 2:
        raise ValueError('CSV must have header row and at least one data row')

    headers = [header.strip().lower() for header in records[0]]
    rows: list[dict[str, str]] = []
    for line_no, record in enumerate(records[1:], start=2):
        if len(record) != len(headers):
            logger.warning('Skipping CSV row %d: expected %d columns, got %d', line_no, len(headers), len(record))
            continue
        row = {header: value.strip() for header, value in zip(headers, record)}
        if not row.get('name') and not row.get('to'):
            continue
        rows.append(row)
    return rows


def _fill(value: Any, row: dict[str, str]) -> Any:
    if isinstance(value, str):
        return _PLACEHOLDER.sub(lambda match: row.get(match.group(1).lower()) or match.group(0), value)
    if isinstance(value, list):
        return [_fill(item, row) for item in value]
    if isinstance(value, dict):
        return {key: _fill(item, row) for key, item in value.items()}
    return value


def merge_template(template: DocumentData, row: dict[str, str], *, name_is_signature: bool = False) -> DocumentData:
    payload = template.model_dump(mode='json')
    payload.pop('seal_data', None)
    merged = {key: _fill(value, row) for key, value in payload.items()}
    merged['seal_data'] = template.seal_data

    for column, field_name in _DIRECT_FIELDS.items():
        if row.get(column):
            merged[field_name] = row[column]

    name = row.get('name')
    if name_is_signature and name:
        merged['signature_name'] = name
        if not row.get('from'):
            merged['from_'] = name
    return DocumentData.model_validate(merged)


def _safe_name(value: str) -> str:
    return re.sub(r'[^a-zA-Z0-9]', '_', value)[:30]


def batch_filename(row: dict[str, str], data: DocumentData, index: int) -> str:
    name = row.get('name') or row.get('to') or f'letter_{index + 1}'
    return f'{_safe_name(name)}_{data.ssic or "letter"}.pdf'


def generate_batch(
    template: DocumentData,
    rows: list[dict[str, str]],
    *,
    name_is_signature: bool = False,
    policy: KeepTogetherPolicy | None = None,
) -> bytes:
    """Render one PDF per row and return them as a ZIP archive."""
    buffer = io.BytesIO()
    used: set[str] = set()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        for index, row in enumerate(rows):
            letter = merge_template(template, row, name_is_signature=name_is_signature)
            filename = batch_filename(row, letter, index)
            if filename in used:
                stem = filename[:-len('.pdf')]
                filename = f'{stem}_{index + 1}.pdf'
            used.add(filename)
            archive.writestr(filename, render_pdf(letter, policy=policy))
            logger.info('Batch letter %d/%d -> %s', index + 1, len(rows), filename)
    return buffer.getvalue()
