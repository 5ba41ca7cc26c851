from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from navletter.batch import generate_batch, read_batch_rows
from navletter.config import get_settings
from navletter.layout.engine import KeepTogetherPolicy
from navletter.render.latex import generate_tex
from navletter.render.pdf_backend import pages_to_pdf
from navletter.render.preview import measure_document, render_preview_png
from navletter.storage import delete_draft, list_drafts, load_draft, save_draft
from navletter.types import DocumentData
from navletter.utils import generate_filename
from navletter.validation import DocumentValidationError, require_valid, validate_document


logger = logging.getLogger('navletter')


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _policy() -> KeepTogetherPolicy:
    return KeepTogetherPolicy.from_settings(get_settings())


def _load_document(path_value: str) -> DocumentData:
    path = Path(path_value).expanduser().resolve()
    payload = json.loads(path.read_text(encoding='utf-8'))
    settings = get_settings()
    if 'font_family' not in payload and 'fontFamily' not in payload:
        payload['font_family'] = settings.default_font_family
    if 'font_size' not in payload and 'fontSize' not in payload:
        payload['font_size'] = settings.default_font_size
    return DocumentData.model_validate(payload)


def _output_path(value: str | None, data: DocumentData, extension: str) -> Path:
    if value:
        return Path(value).expanduser().resolve()
    return get_settings().output_dir() / generate_filename(data.subject, extension)


def _issues_payload(issues) -> list[dict]:
    return [issue.model_dump(mode='json') for issue in issues]


def cmd_pdf(args: argparse.Namespace) -> int:
    data = _load_document(args.input)
    warnings = require_valid(data)
    layout = measure_document(data, policy=_policy())
    output = _output_path(args.output, data, 'pdf')
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(pages_to_pdf(layout.pages, title=data.subject_upper))
    _print_json(
        {
            'status': 'ok',
            'output': str(output),
            'pages': layout.page_count,
            'warnings': _issues_payload(warnings),
        }
    )
    return 0


def cmd_tex(args: argparse.Namespace) -> int:
    data = _load_document(args.input)
    tex = generate_tex(data)
    if args.output == '-':
        print(tex, end='')
        return 0
    output = _output_path(args.output, data, 'tex')
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(tex, encoding='utf-8')
    _print_json({'status': 'ok', 'output': str(output)})
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    data = _load_document(args.input)
    png = render_preview_png(data, page=args.page, dpi=args.dpi, policy=_policy())
    output = _output_path(args.output, data, 'png')
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(png)
    _print_json({'status': 'ok', 'output': str(output), 'page': args.page})
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    data = _load_document(args.input)
    issues = validate_document(data)
    has_errors = any(issue.level.value == 'error' for issue in issues)
    _print_json({'status': 'error' if has_errors else 'ok', 'issues': _issues_payload(issues)})
    return 2 if has_errors else 0


def _draft_summary(record) -> dict:
    return {
        'draft_id': str(record.id),
        'name': record.name,
        'saved_at': record.saved_at.isoformat(),
        'subject': record.document.subject,
    }


def cmd_draft_save(args: argparse.Namespace) -> int:
    data = _load_document(args.input)
    record = save_draft(data, name=args.name or '', draft_id=args.draft_id)
    _print_json({'status': 'ok', **_draft_summary(record)})
    return 0


def cmd_draft_load(args: argparse.Namespace) -> int:
    try:
        record = load_draft(args.draft_id)
    except FileNotFoundError:
        _print_json({'status': 'error', 'message': f'Draft not found: {args.draft_id}'})
        return 2
    if args.output:
        output = Path(args.output).expanduser().resolve()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            json.dumps(record.document.model_dump(mode='json'), ensure_ascii=False, indent=2),
            encoding='utf-8',
        )
        _print_json({'status': 'ok', 'output': str(output), **_draft_summary(record)})
        return 0
    _print_json({'status': 'ok', **_draft_summary(record), 'document': record.document.model_dump(mode='json')})
    return 0


def cmd_draft_list(args: argparse.Namespace) -> int:
    _print_json({'status': 'ok', 'drafts': [_draft_summary(record) for record in list_drafts()]})
    return 0


def cmd_draft_delete(args: argparse.Namespace) -> int:
    if not delete_draft(args.draft_id):
        _print_json({'status': 'error', 'message': f'Draft not found: {args.draft_id}'})
        return 2
    _print_json({'status': 'ok', 'draft_id': args.draft_id})
    return 0


def cmd_batch(args: argparse.Namespace) -> int:
    template = _load_document(args.template)
    csv_path = Path(args.csv).expanduser().resolve()
    rows = read_batch_rows(csv_path.read_text(encoding='utf-8'))
    if not rows:
        _print_json({'status': 'error', 'message': 'No valid rows - fill in at least name or to'})
        return 2
    archive = generate_batch(template, rows, name_is_signature=args.name_is_signature, policy=_policy())
    output = _output_path(args.output, template, 'zip')
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(archive)
    _print_json({'status': 'ok', 'output': str(output), 'letters': len(rows)})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Naval letter generator (SECNAV M-5216.5)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    pdf = sub.add_parser('pdf', help='Render a letter to PDF')
    pdf.add_argument('--input', required=True, help='Path to letter JSON')
    pdf.add_argument('--output', required=False, help='Output PDF path')
    pdf.set_defaults(func=cmd_pdf)

    tex = sub.add_parser('tex', help='Export a letter as LaTeX')
    tex.add_argument('--input', required=True, help='Path to letter JSON')
    tex.add_argument('--output', required=False, help="Output .tex path, or '-' for stdout")
    tex.set_defaults(func=cmd_tex)

    preview = sub.add_parser('preview', help='Rasterize one page to PNG')
    preview.add_argument('--input', required=True, help='Path to letter JSON')
    preview.add_argument('--output', required=False, help='Output PNG path')
    preview.add_argument('--page', type=int, default=1)
    preview.add_argument('--dpi', type=int, required=False)
    preview.set_defaults(func=cmd_preview)

    validate = sub.add_parser('validate', help='Check required fields and reference formats')
    validate.add_argument('--input', required=True, help='Path to letter JSON')
    validate.set_defaults(func=cmd_validate)

    draft = sub.add_parser('draft', help='Manage saved drafts')
    draft_sub = draft.add_subparsers(dest='draft_command', required=True)

    draft_save = draft_sub.add_parser('save', help='Save a letter as a draft')
    draft_save.add_argument('--input', required=True, help='Path to letter JSON')
    draft_save.add_argument('--name', required=False)
    draft_save.add_argument('--draft-id', required=False, help='Overwrite an existing draft')
    draft_save.set_defaults(func=cmd_draft_save)

    draft_load = draft_sub.add_parser('load', help='Load a draft')
    draft_load.add_argument('--draft-id', required=True)
    draft_load.add_argument('--output', required=False, help='Write the letter JSON here')
    draft_load.set_defaults(func=cmd_draft_load)

    draft_list = draft_sub.add_parser('list', help='List drafts, newest first')
    draft_list.set_defaults(func=cmd_draft_list)

    draft_delete = draft_sub.add_parser('delete', help='Delete a draft')
    draft_delete.add_argument('--draft-id', required=True)
    draft_delete.set_defaults(func=cmd_draft_delete)

    batch = sub.add_parser('batch', help='Generate one letter per CSV row into a ZIP')
    batch.add_argument('--template', required=True, help='Path to template letter JSON')
    batch.add_argument('--csv', required=True, help='Path to CSV with a header row')
    batch.add_argument('--output', required=False, help='Output ZIP path')
    batch.add_argument('--name-is-signature', action='store_true', help='Use the name column as signature')
    batch.set_defaults(func=cmd_batch)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        return int(args.func(args))
    except DocumentValidationError as exc:
        _print_json({'status': 'error', 'message': 'Document is not valid', 'issues': _issues_payload(exc.issues)})
        return 2
    except (OSError, ValueError, ValidationError) as exc:
        logger.debug('Command failed', exc_info=True)
        _print_json({'status': 'error', 'message': str(exc)})
        return 2


if __name__ == '__main__':
    raise SystemExit(main())
