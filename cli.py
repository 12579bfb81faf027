"""
CLI entry point for story-radar. Wires the pipeline: ingest -> normalize -> classify -> archive -> report
"""

import argparse
import json
import logging
import os
import sys
import webbrowser
from datetime import datetime, timezone

from analysis.grouping import (
    SORT_KEYS,
    filter_stories,
    find_story,
    group_by_epic,
    group_by_project,
    sort_stories,
)
from ingest.inbox import Inbox, NoStoryFileError, UploadTooLarge
from ingest.remote import DownloadError, download_spreadsheet
from ingest.spreadsheet import UnsupportedFileFormat, parse_file, validate_stories
from jobs.analyzer import analyze_latest, get_latest_analysis, run_analysis
from jobs.scheduler import AnalysisScheduler, DailySchedule
from report.renderer import FILE_EXTENSIONS, render
from scoring.utils import load_weights
from storage.results import ResultStore
from storage.retry import configure_retry

logger = logging.getLogger(__name__)

DEFAULT_INBOX_DIR = './inbox'
DEFAULT_RESULTS_DB = 'analysis-results.db'

# errors raised by collaborators that the CLI reports instead of crashing with a traceback
USER_ERRORS = (NoStoryFileError, UnsupportedFileFormat, UploadTooLarge, DownloadError, FileNotFoundError, ValueError)


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str))


def _parse_now(value: str) -> datetime:
    """Parse --now (ISO 8601). Naive values are taken as UTC."""
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _print_results_stats(store: ResultStore):
    _print_json(store.stats())


def _print_results_list(store: ResultStore):
    _print_json(store.list_runs(limit=1000))


def _print_results_get(store: ResultStore, run_id: str):
    entry = store.get(run_id)
    if entry is None:
        print(f"Analysis run not found: {run_id}")
    else:
        _print_json(entry)


def _remove_run(store: ResultStore, run_id: str, force: bool):
    if not force:
        confirm = input(f"Are you sure you want to remove analysis run '{run_id}' from {store.path}? [y/N]: ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("Aborted run removal.")
            return
    removed = store.delete(run_id)
    if removed:
        print(f"Removed {removed} row(s) for run: {run_id}")
    else:
        print(f"Analysis run not found: {run_id}")


def _clear_results(store: ResultStore, force: bool):
    if not force:
        confirm = input(f"Are you sure you want to clear all analysis runs at {store.path}? This cannot be undone. [y/N]: ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("Aborted clear.")
            return
    store.clear()
    print(f"Cleared analysis runs at {store.path}")


def _handle_results_actions(args, store: ResultStore) -> bool:
    """Process archive inspection/management flags. Returns True if one was performed."""
    flag_actions = [
        (args.results_info, lambda: _print_results_stats(store)),
        (args.results_clear, lambda: _clear_results(store, args.force)),
        (args.results_list, lambda: _print_results_list(store)),
        (bool(args.results_get), lambda: _print_results_get(store, args.results_get)),
        (bool(args.results_remove), lambda: _remove_run(store, args.results_remove, args.force)),
    ]
    for enabled, handler in flag_actions:
        if enabled:
            handler()
            return True
    return False


def _read_local_file(path: str):
    with open(path, 'rb') as fh:
        return fh.read(), os.path.basename(path)


def load_source(args, inbox: Inbox):
    """Return (content, file_name) for the story export selected by --url, --file or the inbox."""
    if args.url:
        token = args.source_token or os.getenv('STORY_SOURCE_TOKEN')
        return download_spreadsheet(args.url, token=token)
    if args.file:
        return _read_local_file(args.file)
    latest = inbox.latest_file()
    return inbox.read(latest), latest


def _open_file_in_browser(path: str):
    """Open a file URL in the system default web browser."""
    webbrowser.open("file://" + os.path.abspath(path))


def _write_report_file(path_base: str, ext: str, content: str, open_html: bool = False) -> str:
    """Write the rendered content to a file and optionally open HTML in the browser."""
    out_path = path_base if path_base.lower().endswith(f".{ext}") else f"{path_base}.{ext}"
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    # newline='' is safe for CSV on Windows and harmless for other formats
    with open(out_path, 'w', encoding='utf-8', newline='') as fh:
        fh.write(content)
    print(f"Wrote report to {out_path}")
    if open_html:
        try:
            _open_file_in_browser(out_path)
        except webbrowser.Error:
            print('Failed to open browser automatically; file saved at', out_path)
    return out_path


def write_output(fmt: str, rendered: str, args):
    """Write output to --out-file (or stdout when omitted)."""
    out_file = (args.out_file or '').strip()
    if not out_file:
        print(rendered)
        return
    ext = FILE_EXTENSIONS.get(fmt, 'txt')
    _write_report_file(out_file, ext, rendered, open_html=(args.open and ext == 'html'))


def run_pipeline(args, inbox: Inbox, store):
    """Execute ingest -> classify -> archive -> render and return (fmt, rendered)."""
    content, file_name = load_source(args, inbox)
    now = _parse_now(args.now)
    logger.debug("Analyzing %s (%d bytes) as of %s", file_name, len(content), now.isoformat())
    payload = run_analysis(content, file_name, now, store=store, weights=load_weights(args.weights or None))
    fmt = (args.output or 'text').lower()
    return fmt, render(payload, fmt=fmt, generated_at=datetime.now(timezone.utc).isoformat())


def _show_latest(args, store: ResultStore):
    payload = get_latest_analysis(store)
    if payload is None:
        print("No analysis found. Run analysis first.")
        return
    fmt = (args.output or 'text').lower()
    write_output(fmt, render(payload, fmt=fmt), args)


def _story_listing(args, inbox: Inbox) -> bool:
    """Handle --stories / --group-by / --story. Returns True if one of them ran."""
    if not (args.stories or args.group_by or args.story):
        return False
    content, file_name = load_source(args, inbox)
    stories = parse_file(content, file_name)
    if args.story:
        story = find_story(stories, args.story)
        if story is None:
            print(f"Story not found: {args.story}")
        else:
            _print_json(story.to_dict())
        return True
    if args.group_by:
        grouper = group_by_project if args.group_by == 'project' else group_by_epic
        _print_json({k: [s.to_dict() for s in v] for k, v in grouper(stories).items()})
        return True
    listed = sort_stories(filter_stories(stories, args.filter), by=args.sort_by)
    _print_json({'source_file': file_name, 'count': len(listed), 'stories': [s.to_dict() for s in listed]})
    return True


def _validate_file(path: str) -> bool:
    content, file_name = _read_local_file(path)
    stories = parse_file(content, file_name)
    errors = validate_stories(stories)
    if errors:
        print("Validation failed:")
        for err in errors:
            print(f"  {err}")
        return False
    print(f"File is valid: {len(stories)} stories")
    _print_json([s.to_dict() for s in stories[:3]])
    return True


def _import_file(args, inbox: Inbox, store: ResultStore):
    """Store a file into the inbox after checking it parses, then analyze it."""
    content, original_name = _read_local_file(args.import_file)
    stories = parse_file(content, original_name)
    if not stories:
        raise ValueError('File contains no valid stories')
    now = _parse_now(args.now)
    stored = inbox.store(content, original_name, now=now)
    payload = run_analysis(content, stored, now, store=store, weights=load_weights(args.weights or None))
    print(f"Imported {len(stories)} stories as {stored}")
    _print_json(payload['analysis']['summary'])


def _run_scheduler(args, inbox: Inbox, store: ResultStore):
    weights = load_weights(args.weights or None)

    def job(now):
        analyze_latest(inbox, now, store=store, weights=weights)

    scheduler = AnalysisScheduler(job, DailySchedule.parse(args.schedule_time))
    print(f"Scheduling daily story analysis at {args.schedule_time} (Ctrl+C to stop)")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
        print("Scheduler stopped.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Story analysis CLI: overdue, at-risk and next-up work items from a story export")
    parser.add_argument("--inbox", type=str, default="", help="Inbox directory holding uploaded exports (env STORY_INBOX_DIR, default ./inbox)")
    parser.add_argument("--file", type=str, default="", help="Analyze this CSV/Excel file instead of the newest inbox file")
    parser.add_argument("--url", type=str, default="", help="Download the export from this URL instead of reading the inbox")
    parser.add_argument("--source-token", type=str, default="", help="Bearer token for --url (env STORY_SOURCE_TOKEN)")
    parser.add_argument("--now", type=str, default="", help="Reference time (ISO 8601); defaults to the current UTC time")
    parser.add_argument("--weights", type=str, default="", help="Path to a weights YAML file (default config/weights.yaml)")
    parser.add_argument("--output", type=str, help="Output format (text, md, csv, html, json)", default="text")
    parser.add_argument("--out-file", type=str, default="", help="Output file path. If omitted the report is printed")
    parser.add_argument("--open", action="store_true", help="Open the generated HTML report in the default browser")
    parser.add_argument("--results", type=str, default="", help="Path to the SQLite analysis archive (env STORY_RESULTS_DB)")
    parser.add_argument("--no-save", action="store_true", help="Do not archive the analysis result")
    parser.add_argument("--show-latest", action="store_true", help="Render the latest archived analysis instead of running a new one")
    parser.add_argument("--stories", action="store_true", help="List parsed stories as JSON")
    parser.add_argument("--filter", type=str, default="all", help="With --stories: all, active, high, medium, low or an exact status")
    parser.add_argument("--sort-by", type=str, choices=SORT_KEYS, default="due_date", help="With --stories: sort order")
    parser.add_argument("--group-by", type=str, choices=("project", "epic"), default="", help="List stories grouped by project or epic")
    parser.add_argument("--story", type=str, default="", help="Show a single story by id")
    parser.add_argument("--validate", type=str, default="", help="Validate a CSV/Excel file without importing it")
    parser.add_argument("--import", dest="import_file", type=str, default="", help="Copy a CSV/Excel file into the inbox and analyze it")
    parser.add_argument("--schedule", action="store_true", help="Run the analysis every day at --schedule-time until interrupted")
    parser.add_argument("--schedule-time", type=str, default="06:00", help="Daily run time HH:MM in server-local time (default 06:00)")
    # retry/backoff knobs for --url downloads: environment variables STORY_MAX_RETRIES, STORY_BACKOFF_BASE,
    # STORY_BACKOFF_JITTER, STORY_MAX_BACKOFF set the defaults.
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum retry attempts for downloads (overrides STORY_MAX_RETRIES env)")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds (overrides STORY_BACKOFF_BASE env)")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff (overrides STORY_BACKOFF_JITTER env)")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds (overrides STORY_MAX_BACKOFF env)")
    parser.add_argument("--results-info", action="store_true", help="Show archive statistics")
    parser.add_argument("--results-clear", action="store_true", help="Delete every archived analysis run")
    parser.add_argument("--results-list", action="store_true", help="List archived analysis runs")
    parser.add_argument("--results-get", type=str, default="", help="Print an archived run by id (analysis-YYYY-MM-DD)")
    parser.add_argument("--results-remove", type=str, default="", help="Remove an archived run by id")
    parser.add_argument("--force", action="store_true", help="Skip confirmation (use with --results-clear or --results-remove)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # CLI flags take precedence over environment variables
    configure_retry(max_retries=args.max_retries, backoff_base=args.backoff_base, backoff_jitter=args.backoff_jitter, max_backoff=args.max_backoff)
    inbox = Inbox(args.inbox or os.getenv('STORY_INBOX_DIR') or DEFAULT_INBOX_DIR)
    store = ResultStore(args.results or os.getenv('STORY_RESULTS_DB') or DEFAULT_RESULTS_DB)

    try:
        if _handle_results_actions(args, store):
            return 0
        if args.validate:
            return 0 if _validate_file(args.validate) else 1
        if args.show_latest:
            _show_latest(args, store)
            return 0
        if _story_listing(args, inbox):
            return 0
        if args.import_file:
            _import_file(args, inbox, store)
            return 0
        if args.schedule:
            _run_scheduler(args, inbox, store)
            return 0

        # default: analyze once
        fmt, rendered = run_pipeline(args, inbox, None if args.no_save else store)
        write_output(fmt, rendered, args)
        return 0
    except USER_ERRORS as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
