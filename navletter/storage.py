from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError

from .config import get_settings
from .types import DocumentData


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DraftRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str = ''
    saved_at: datetime = Field(default_factory=utcnow)
    document: DocumentData


def drafts_root() -> Path:
    root = get_settings().drafts_dir()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _safe_draft_id(draft_id: UUID | str) -> str:
    if isinstance(draft_id, UUID):
        return str(draft_id)
    token = str(draft_id or '').strip()
    if not token:
        raise ValueError('draft_id is required')
    try:
        return str(UUID(token))
    except Exception as exc:
        raise ValueError(f'invalid draft_id: {draft_id}') from exc


def draft_path(draft_id: UUID | str) -> Path:
    return drafts_root() / f'{_safe_draft_id(draft_id)}.json'


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding='utf-8')
    tmp.replace(path)


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding='utf-8'))


def save_draft(data: DocumentData, *, name: str = '', draft_id: UUID | str | None = None) -> DraftRecord:
    record = DraftRecord(document=data, name=name or data.subject.strip())
    if draft_id is not None:
        record = record.model_copy(update={'id': UUID(_safe_draft_id(draft_id))})
    write_json_atomic(draft_path(record.id), record.model_dump(mode='json'))
    logger.info('Saved draft %s', record.id)
    return record


def load_draft(draft_id: UUID | str) -> DraftRecord:
    path = draft_path(draft_id)
    if not path.exists():
        raise FileNotFoundError(f'draft not found: {draft_id}')
    return DraftRecord.model_validate(read_json(path))


def list_drafts() -> list[DraftRecord]:
    """All readable drafts, newest first."""
    records: list[DraftRecord] = []
    for path in drafts_root().glob('*.json'):
        try:
            records.append(DraftRecord.model_validate(read_json(path)))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning('Skipping unreadable draft %s: %s', path.name, exc)
    records.sort(key=lambda record: record.saved_at, reverse=True)
    return records


def delete_draft(draft_id: UUID | str) -> bool:
    path = draft_path(draft_id)
    if not path.exists():
        return False
    path.unlink()
    logger.info('Deleted draft %s', draft_id)
    return True
