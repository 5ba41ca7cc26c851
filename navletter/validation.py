from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel

from .config import get_settings
from .types import DocumentData


class IssueLevel(str, Enum):
    error = 'error'
    warning = 'warning'
    hint = 'hint'


class ValidationIssue(BaseModel):
    field: str
    level: IssueLevel
    message: str


class DocumentValidationError(ValueError):
    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        messages = '; '.join(issue.message for issue in issues)
        super().__init__(f'document is not valid: {messages}')


REFERENCE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r'^MCO\s+\d+\.\d+[A-Z]?$', re.IGNORECASE), 'MCO'),
    (re.compile(r'^SECNAVINST\s+\d+\.\d+[A-Z]?$', re.IGNORECASE), 'SECNAVINST'),
    (re.compile(r'^SECNAV M[\s-]\d+\.\d+$', re.IGNORECASE), 'SECNAV M'),
    (re.compile(r'^DoD\s+\d+\.\d+-R$', re.IGNORECASE), 'DoD Directive'),
    (re.compile(r'^MARADMIN\s+\d+/\d+$', re.IGNORECASE), 'MARADMIN'),
    (re.compile(r'^ALMAR\s+\d+/\d+$', re.IGNORECASE), 'ALMAR'),
    (re.compile(r'^Article\s+\d+', re.IGNORECASE), 'Article'),
    (re.compile(r'^(UCMJ|MCM|JTR)$', re.IGNORECASE), 'Manual'),
]


def validate_required_fields(data: DocumentData) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not data.from_.strip():
        issues.append(ValidationIssue(field='from', level=IssueLevel.error, message='From field is required'))
    if not data.to.strip():
        issues.append(ValidationIssue(field='to', level=IssueLevel.error, message='To field is required'))
    if not data.subject.strip():
        issues.append(ValidationIssue(field='subject', level=IssueLevel.error, message='Subject is required'))
    if not data.paragraphs:
        issues.append(
            ValidationIssue(field='paragraphs', level=IssueLevel.error, message='At least one paragraph is required')
        )
    if not data.signature_name.strip():
        issues.append(
            ValidationIssue(field='signature_name', level=IssueLevel.warning, message='Signature name is empty')
        )
    return issues


def validate_subject_length(subject: str, max_length: int | None = None) -> ValidationIssue | None:
    limit = get_settings().subject_max_length if max_length is None else int(max_length)
    if subject and len(subject) > limit:
        return ValidationIssue(
            field='subject',
            level=IssueLevel.warning,
            message=f'Subject is {len(subject)} characters (recommended max: {limit})',
        )
    return None


def reference_kind(reference: str) -> str | None:
    token = str(reference or '').strip()
    for pattern, name in REFERENCE_PATTERNS:
        if pattern.search(token):
            return name
    return None


def validate_reference_format(reference: str) -> ValidationIssue | None:
    token = str(reference or '').strip()
    if len(token) < 3 or reference_kind(token) is not None:
        return None
    if re.match(r'^mco', token, re.IGNORECASE):
        return ValidationIssue(
            field='reference',
            level=IssueLevel.hint,
            message='MCO format is "MCO 1234.56A" (e.g., MCO 1050.3J)',
        )
    if re.match(r'^secnav', token, re.IGNORECASE):
        return ValidationIssue(
            field='reference',
            level=IssueLevel.hint,
            message='SECNAVINST format is "SECNAVINST 1234.56H"',
        )
    return ValidationIssue(
        field='reference',
        level=IssueLevel.warning,
        message=f'Unrecognized reference format: {token}',
    )


def validate_document(data: DocumentData, *, max_subject_length: int | None = None) -> list[ValidationIssue]:
    issues = validate_required_fields(data)
    subject_issue = validate_subject_length(data.subject, max_subject_length)
    if subject_issue is not None:
        issues.append(subject_issue)
    for reference in data.references:
        issue = validate_reference_format(reference)
        if issue is not None:
            issues.append(issue)
    return issues


def require_valid(data: DocumentData) -> list[ValidationIssue]:
    """Raise DocumentValidationError on any error-level issue; return the rest."""
    issues = validate_document(data)
    errors = [issue for issue in issues if issue.level is IssueLevel.error]
    if errors:
        raise DocumentValidationError(errors)
    return issues
