"""
Report renderer: generate text/Markdown/CSV/HTML/JSON views of an analysis run.
HTML is rendered with Jinja2 using report/templates/report.html.j2.

All renderers take a run payload as produced by jobs.analyzer.run_analysis (or loaded back from
the result store): {'timestamp': ..., 'source_file': ..., 'analysis': {...}}.
"""

from typing import Optional, List, Dict, Any
import os
import json
import io
import csv

from jinja2 import Environment, FileSystemLoader, select_autoescape

# bucket key -> section title, in display order
BUCKETS = (
    ('overdue', 'Overdue'),
    ('at_risk', 'At Risk'),
    ('need_to_start', 'Need to Start'),
    ('in_progress', 'In Progress'),
)

CSV_HEADER = [
    'bucket', 'id', 'description', 'project_description', 'epic_description', 'priority', 'status',
    'due_date', 'remaining_hours', 'days_until_due', 'days_overdue', 'urgency_score', 'progress_percentage',
]

_SUMMARY_LABELS = (
    ('total_active', 'Active'),
    ('overdue_count', 'Overdue'),
    ('at_risk_count', 'At Risk'),
    ('in_progress_count', 'In Progress'),
    ('to_do_count', 'To Do'),
)


def _analysis(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return (payload or {}).get('analysis') or {}


def _summary(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return _analysis(payload).get('summary') or {}


def _fmt_number(value: Any, digits: int = 1) -> str:
    if value is None:
        return ''
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    return str(value)


def _md_cell(value: Any) -> str:
    """Table-cell text: pipes escaped, newlines flattened."""
    if value is None:
        return ''
    return str(value).replace('|', '\\|').replace('\n', ' ')


def describe_timing(story: Dict[str, Any]) -> str:
    """Short due-date phrase for a story dict: '3d overdue', 'due in 2d', 'no due date'."""
    if story.get('days_overdue') is not None:
        return f"{story['days_overdue']}d overdue"
    days = story.get('days_until_due')
    if days is None:
        return f"due {story['due_date'][:10]}" if story.get('due_date') else 'no due date'
    if days < 0:
        return f"{-days}d overdue"
    if days == 0:
        return 'due today'
    return f"due in {days}d"


def _story_line(story: Dict[str, Any]) -> str:
    parts = [
        f"{story.get('id') or '?'}: {story.get('description') or '(no description)'}",
        f"[{story.get('priority')}/{story.get('status')}]",
        describe_timing(story),
        f"{_fmt_number(story.get('remaining_hours'))}h left",
    ]
    if story.get('urgency_score') is not None:
        parts.append(f"urgency {_fmt_number(story['urgency_score'])}")
    if story.get('progress_percentage') is not None:
        parts.append(f"{_fmt_number(story['progress_percentage'])}% complete")
    return ' | '.join(parts)


def render_text(payload: Dict[str, Any]) -> str:
    """Render a plain-text summary with one line per story."""
    summary = _summary(payload)
    lines = [f"{label}: {summary.get(key, 0)}" for key, label in _SUMMARY_LABELS]
    analysis = _analysis(payload)
    for key, title in BUCKETS:
        stories = analysis.get(key) or []
        if not stories:
            continue
        lines.append('')
        lines.append(f"{title}:")
        lines.extend(f"  - {_story_line(s)}" for s in stories)
    return "\n".join(lines)


def render_markdown(payload: Dict[str, Any]) -> str:
    """Render a Markdown report: summary bullets followed by one table per bucket."""
    summary = _summary(payload)
    md = ["# Story Analysis\n"]
    if payload.get('source_file'):
        md.append(f"_Source: {payload['source_file']} ({payload.get('timestamp', '')})_\n")
    for key, label in _SUMMARY_LABELS:
        md.append(f"- {label}: **{summary.get(key, 0)}**")
    analysis = _analysis(payload)
    for key, title in BUCKETS:
        stories = analysis.get(key) or []
        md.append(f"\n## {title} ({len(stories)})\n")
        if not stories:
            md.append("_None._")
            continue
        md.append("| ID | Description | Project | Priority | Status | Due | Remaining (h) | Urgency | Progress |")
        md.append("|---|---|---|---|---|---|---|---|---|")
        for s in stories:
            progress = s.get('progress_percentage')
            md.append(
                f"| {_md_cell(s.get('id'))} | {_md_cell(s.get('description'))} | {_md_cell(s.get('project_description'))} "
                f"| {s.get('priority', '')} | {_md_cell(s.get('status'))} | {describe_timing(s)} "
                f"| {_fmt_number(s.get('remaining_hours'))} | {_fmt_number(s.get('urgency_score'))} "
                f"| {_fmt_number(progress) + '%' if progress is not None else ''} |"
            )
    return "\n".join(md)


def render_csv(payload: Dict[str, Any]) -> str:
    """Render one CSV row per story per bucket (a story may appear in two buckets)."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    analysis = _analysis(payload)
    for key, _title in BUCKETS:
        for s in analysis.get(key) or []:
            writer.writerow([key] + [s.get(col, '') if s.get(col) is not None else '' for col in CSV_HEADER[1:]])
    return output.getvalue()


def render_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload or {}, indent=2, default=str)


def _template_env() -> Environment:
    tmpl_dir = os.path.join(os.path.dirname(__file__), 'templates')
    env = Environment(loader=FileSystemLoader(tmpl_dir), autoescape=select_autoescape(['html', 'xml', 'j2']))
    env.filters['timing'] = describe_timing
    env.filters['num'] = _fmt_number
    return env


def render_html(payload: Dict[str, Any], generated_at: Optional[str] = None) -> str:
    """Render the HTML report through the Jinja2 template."""
    tmpl = _template_env().get_template('report.html.j2')
    analysis = _analysis(payload)
    sections: List[Dict[str, Any]] = [
        {'key': key, 'title': title, 'stories': analysis.get(key) or []} for key, title in BUCKETS
    ]
    return tmpl.render(
        summary=_summary(payload),
        summary_labels=_SUMMARY_LABELS,
        sections=sections,
        source_file=(payload or {}).get('source_file'),
        timestamp=(payload or {}).get('timestamp'),
        generated_at=generated_at,
    )


def render(payload: Dict[str, Any], fmt: str = 'text', generated_at: Optional[str] = None) -> str:
    """Main render function: dispatch on fmt (text, md/markdown, csv, html/htm, json)."""
    fmt_l = (fmt or 'text').lower()
    if fmt_l in ('md', 'markdown'):
        return render_markdown(payload)
    if fmt_l == 'csv':
        return render_csv(payload)
    if fmt_l in ('html', 'htm'):
        return render_html(payload, generated_at=generated_at)
    if fmt_l in ('json', 'js'):
        return render_json(payload)
    return render_text(payload)


FILE_EXTENSIONS = {'html': 'html', 'htm': 'html', 'md': 'md', 'markdown': 'md', 'csv': 'csv', 'json': 'json', 'js': 'json', 'text': 'txt'}
