from __future__ import annotations

import base64
import binascii
import logging
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)


class Classification(str, Enum):
    none = 'none'
    cui = 'CUI'
    fouo = 'FOUO'

    @property
    def banner(self) -> str:
        if self is Classification.none:
            return ''
        return self.value


class DocumentKind(str, Enum):
    basic = 'basic'
    endorsement = 'endorsement'
    memorandum = 'memorandum'


class ParagraphLevel(int, Enum):
    top = 0
    sub = 1
    subsub = 2
    subsubsub = 3


_LEVEL_TAGS: dict[str, ParagraphLevel] = {
    'top': ParagraphLevel.top,
    'para': ParagraphLevel.top,
    'sub': ParagraphLevel.sub,
    'subpara': ParagraphLevel.sub,
    'subsub': ParagraphLevel.subsub,
    'subsubpara': ParagraphLevel.subsub,
    'subsubsub': ParagraphLevel.subsubsub,
    'subsubsubpara': ParagraphLevel.subsubsub,
}


def resolve_level(tag: str | None) -> ParagraphLevel:
    token = str(tag or '').strip().lower()
    level = _LEVEL_TAGS.get(token)
    if level is None:
        logger.warning('Unknown paragraph level %r; using deepest level', tag)
        return ParagraphLevel.subsubsub
    return level


def _clean_string_list(value: Any) -> Any:
    if value is None:
        return []
    if not isinstance(value, list):
        return value
    cleaned: list[str] = []
    for item in value:
        token = str(item or '').strip()
        if token:
            cleaned.append(token)
    return cleaned


class Paragraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = 'top'
    text: str = ''
    subject: str | None = None
    portion_mark: str | None = Field(
        default=None,
        validation_alias=AliasChoices('portion_mark', 'portionMark'),
    )

    @field_validator('subject', 'portion_mark', mode='before')
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        token = str(value).strip()
        return token or None

    @property
    def depth(self) -> ParagraphLevel:
        return resolve_level(self.level)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.subject


class DocumentData(BaseModel):
    """Snapshot of a letter as collected from the form."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    classification: Classification = Classification.none
    kind: DocumentKind = Field(
        default=DocumentKind.basic,
        validation_alias=AliasChoices('kind', 'documentType', 'document_type'),
    )

    # Sender's symbols
    ssic: str = ''
    office_code: str = Field(default='', validation_alias=AliasChoices('office_code', 'officeCode'))
    date: str = ''

    # Endorsement
    endorse_number: str = Field(default='FIRST', validation_alias=AliasChoices('endorse_number', 'endorseNumber'))
    endorse_ref: str = Field(default='', validation_alias=AliasChoices('endorse_ref', 'endorseRef'))
    endorse_action: str = Field(default='', validation_alias=AliasChoices('endorse_action', 'endorseAction'))

    # Letterhead
    use_letterhead: bool = Field(default=False, validation_alias=AliasChoices('use_letterhead', 'useLetterhead'))
    unit_name: str = Field(default='', validation_alias=AliasChoices('unit_name', 'unitName'))
    unit_address: str = Field(default='', validation_alias=AliasChoices('unit_address', 'unitAddress'))
    seal_data: str | None = Field(default=None, validation_alias=AliasChoices('seal_data', 'sealData'))
    seal_filename: str = Field(
        default='DOW-Seal-BW.jpg',
        validation_alias=AliasChoices('seal_filename', 'sealFilename'),
    )

    # Addressing
    from_: str = Field(default='', validation_alias=AliasChoices('from_', 'from'))
    to: str = ''
    via: list[str] = Field(default_factory=list)
    subject: str = Field(default='', validation_alias=AliasChoices('subject', 'subj'))
    references: list[str] = Field(default_factory=list, validation_alias=AliasChoices('references', 'refs'))
    enclosures: list[str] = Field(default_factory=list, validation_alias=AliasChoices('enclosures', 'encls'))

    paragraphs: list[Paragraph] = Field(default_factory=list, validation_alias=AliasChoices('paragraphs', 'paras'))

    # End block
    signature_name: str = Field(default='', validation_alias=AliasChoices('signature_name', 'sigName'))
    by_direction: bool = Field(default=False, validation_alias=AliasChoices('by_direction', 'byDirection'))
    copies: list[str] = Field(default_factory=list)

    # Typography
    font_family: str = Field(default='times', validation_alias=AliasChoices('font_family', 'fontFamily'))
    font_size: float = Field(default=12, validation_alias=AliasChoices('font_size', 'fontSize'))
    portion_marking_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices('portion_marking_enabled', 'portionMarkingEnabled'),
    )

    @field_validator('via', 'references', 'enclosures', 'copies', mode='before')
    @classmethod
    def _strip_lists(cls, value: Any) -> Any:
        return _clean_string_list(value)

    @field_validator('paragraphs', mode='before')
    @classmethod
    def _drop_empty_paragraphs(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        kept: list[Any] = []
        for item in value:
            if isinstance(item, Paragraph):
                if not item.is_empty:
                    kept.append(item)
                continue
            if isinstance(item, dict):
                text = str(item.get('text') or '').strip()
                subject = str(item.get('subject') or '').strip()
                if not text and not subject:
                    continue
            kept.append(item)
        return kept

    @field_validator('classification', mode='before')
    @classmethod
    def _coerce_classification(cls, value: Any) -> Any:
        if isinstance(value, Classification):
            return value
        token = str(value or '').strip()
        if not token:
            return Classification.none
        for member in Classification:
            if token.lower() == member.value.lower():
                return member
        return value

    @field_validator('font_size', mode='before')
    @classmethod
    def _coerce_font_size(cls, value: Any) -> Any:
        if value in (None, ''):
            return 12
        return value

    @property
    def subject_upper(self) -> str:
        return self.subject.strip().upper()

    @property
    def signature_upper(self) -> str:
        return self.signature_name.strip().upper()

    def seal_bytes(self) -> bytes | None:
        """Decode the seal image (data URL or bare base64); None if unusable."""
        raw = str(self.seal_data or '').strip()
        if not raw:
            return None
        if raw.startswith('data:'):
            _, _, raw = raw.partition(',')
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            logger.warning('Seal image is not valid base64: %s', exc)
            return None
        return decoded or None
