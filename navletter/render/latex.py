from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..layout.numbering import NumberingState, enclosure_label, reference_label
from ..layout.text import StyledRun, ensure_double_spaces, parse_to_runs
from ..types import DocumentData, DocumentKind, ParagraphLevel


logger = logging.getLogger(__name__)

_LATEX_SPECIALS = {
    '\\': r'\textbackslash{}',
    '&': r'\&',
    '%': r'\%',
    '$': r'\$',
    '#': r'\#',
    '_': r'\_',
    '{': r'\{',
    '}': r'\}',
    '~': r'\textasciitilde{}',
    '^': r'\textasciicircum{}',
}

_PREAMBLE = r"""\documentclass[12pt,oneside]{article}
\usepackage[letterpaper,top=1in,bottom=1in,left=1in,right=1in,headheight=26pt,headsep=12pt,footskip=0.5in]{geometry}
\usepackage{mathptmx}
\usepackage{setspace}
\usepackage{fancyhdr}
\usepackage{graphicx}
\usepackage{eso-pic}

\singlespacing
\setlength{\parindent}{0pt}
\setlength{\parskip}{0pt}

\fancypagestyle{firstpage}{\fancyhf{}\renewcommand{\headrulewidth}{0pt}}
\fancypagestyle{continuation}{\fancyhf{}\renewcommand{\headrulewidth}{0pt}\fancyhead[L]{\small Subj:\hspace{0.375in}SUBJECT_TEXT}\fancyfoot[C]{\thepage}}
\pagestyle{continuation}

\newlength{\labeltab}\setlength{\labeltab}{0.625in}
\newlength{\Lmain}\settowidth{\Lmain}{1.\ }
\newlength{\Lsub}\settowidth{\Lsub}{a.\ }
\newlength{\Lsubsub}\settowidth{\Lsubsub}{(1)\ }

\begin{document}
\thispagestyle{firstpage}
\vspace*{-0.5in}

"""

_INDENTS = {
    ParagraphLevel.top: '',
    ParagraphLevel.sub: r'\hspace{\Lmain}',
    ParagraphLevel.subsub: r'\hspace{\Lmain}\hspace{\Lsub}',
    ParagraphLevel.subsubsub: r'\hspace{\Lmain}\hspace{\Lsub}\hspace{\Lsubsub}',
}


def escape_latex(text: str | None) -> str:
    if not text:
        return ''
    return ''.join(_LATEX_SPECIALS.get(char, char) for char in text)


def runs_to_latex(runs: list[StyledRun]) -> str:
    parts: list[str] = []
    for run in runs:
        body = escape_latex(run.text).replace('\n', '\\\\\n')
        if run.underline:
            body = f'\\underline{{{body}}}'
        if run.italic:
            body = f'\\textit{{{body}}}'
        if run.bold:
            body = f'\\textbf{{{body}}}'
        parts.append(body)
    return ''.join(parts)


def _labelled_list(label: str, items: list[str]) -> str:
    lines = [
        r'\vspace{\baselineskip}',
        f'\\noindent\\makebox[\\labeltab][l]{{{label}}}%',
        r'\begin{minipage}[t]{\dimexpr\textwidth-\labeltab\relax}',
    ]
    for index, item in enumerate(items):
        suffix = '\\\\*' if index < len(items) - 1 else ''
        lines.append(f'{item}{suffix}')
    lines.append(r'\end{minipage}')
    return '\n'.join(lines) + '\n\n'


def generate_tex(data: DocumentData, *, generated_at: datetime | None = None) -> str:
    """Serialize ``data`` as a standalone LaTeX article."""
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    subject = escape_latex(data.subject_upper)
    banner = escape_latex(data.classification.banner)

    out: list[str] = [f'%% Naval Letter - Generated {stamp}\n%% SECNAV M-5216.5 Compliant\n\n']
    out.append(_PREAMBLE.replace('SUBJECT_TEXT', subject))

    if banner:
        out.append(f'\\begin{{center}}\\textbf{{{banner}}}\\end{{center}}\\vspace{{6pt}}\n')

    if data.use_letterhead:
        if data.seal_bytes() is not None and data.seal_filename:
            out.append(
                '\\AddToShipoutPictureBG*{\\AtPageUpperLeft{\\put(0.5in,-1.5in)'
                f'{{\\includegraphics[width=1in]{{{data.seal_filename}}}}}}}}}\n'
            )
        out.append('\\begin{center}\n')
        if data.unit_name:
            out.append(f'{{\\fontsize{{10}}{{11}}\\selectfont\\textbf{{{escape_latex(data.unit_name.upper())}}}}}\\\\\n')
        for line in data.unit_address.split('\n'):
            if line.strip():
                out.append(f'{{\\fontsize{{8}}{{9}}\\selectfont {escape_latex(line.strip().upper())}}}\\\\\n')
        out.append('\\end{center}\\vspace{6pt}\n')

    if data.kind is DocumentKind.memorandum:
        out.append('\\begin{center}\\textbf{MEMORANDUM}\\end{center}\\vspace{6pt}\n')

    symbols = [escape_latex(value) for value in (data.ssic, data.office_code, data.date) if value]
    if symbols:
        out.append('\\begin{flushright}\n' + '\\\\\n'.join(symbols) + '\n\\end{flushright}\n\\vspace{\\baselineskip}\n')

    if data.kind is DocumentKind.endorsement:
        heading = f'{data.endorse_number.upper()} ENDORSEMENT'
        if data.endorse_ref:
            heading = f'{heading} on {data.endorse_ref}'
        out.append(f'\\noindent\\textbf{{{escape_latex(heading)}}}\\par\\vspace{{\\baselineskip}}\n')

    out.append(f'\\noindent\\makebox[\\labeltab][l]{{From:}}{escape_latex(data.from_)}\n\n')
    out.append(f'\\noindent\\makebox[\\labeltab][l]{{To:}}{escape_latex(data.to)}\n\n')
    if data.via:
        numbered = len(data.via) > 1
        out.append('\\noindent\\makebox[\\labeltab][l]{Via:}')
        for index, via in enumerate(data.via):
            text = f'({index + 1}) {escape_latex(via)}' if numbered else escape_latex(via)
            out.append(text if index == 0 else f'\\\\\n\\hspace*{{\\labeltab}}{text}')
        out.append('\n\n')

    out.append(f'\\vspace{{\\baselineskip}}\n\\noindent\\makebox[\\labeltab][l]{{Subj:}}{subject}\n\n')

    if data.references:
        items = [f'{reference_label(i)} {escape_latex(ref)}' for i, ref in enumerate(data.references)]
        out.append(_labelled_list('Ref:', items))
    if data.enclosures:
        items = [f'{enclosure_label(i)} {escape_latex(encl)}' for i, encl in enumerate(data.enclosures)]
        out.append(_labelled_list('Encl:', items))

    if data.kind is DocumentKind.endorsement and data.endorse_action:
        action = escape_latex(data.endorse_action.rstrip('.'))
        out.append(f'\\par\\vspace{{\\baselineskip}}\n\\noindent 1.\\ {action}.\n\n')

    state = NumberingState()
    for paragraph in data.paragraphs:
        level = paragraph.depth
        state = state.advance(level)
        label = escape_latex(state.label(level))
        portion = ''
        if data.portion_marking_enabled and paragraph.portion_mark:
            mark = paragraph.portion_mark
            portion = escape_latex(mark if mark.startswith('(') else f'({mark})') + '\\ '
        subject_part = ''
        if level is ParagraphLevel.top and paragraph.subject:
            subject_part = f'\\underline{{{escape_latex(paragraph.subject)}}}\\ \\ '
        body = runs_to_latex(parse_to_runs(ensure_double_spaces(paragraph.text)))
        indent = _INDENTS[level] or ' '
        out.append(f'\\par\\vspace{{\\baselineskip}}\n\\noindent{indent}{portion}{label}\\ {subject_part}{body}\n\n')

    if data.signature_name:
        out.append(f'\\par\\vspace{{4\\baselineskip}}\n\\hspace*{{3.25in}}{escape_latex(data.signature_upper)}')
        if data.by_direction:
            out.append('\\\\\n\\hspace*{3.25in}By direction')
        out.append('\n\n')

    if data.copies:
        numbered = len(data.copies) > 1
        out.append('\\par\\vspace{2\\baselineskip}\n\\noindent Copy to:\\\\\n')
        for index, copy in enumerate(data.copies):
            text = f'({index + 1}) {escape_latex(copy)}' if numbered else escape_latex(copy)
            suffix = '\\\\*' if index < len(data.copies) - 1 else ''
            out.append(f'\\hspace*{{\\labeltab}}{text}{suffix}\n')

    if banner:
        out.append(f'\\vfill\n\\begin{{center}}\\textbf{{{banner}}}\\end{{center}}\n')

    out.append('\\end{document}\n')
    logger.debug('Generated LaTeX for %d paragraph(s)', len(data.paragraphs))
    return ''.join(out)
