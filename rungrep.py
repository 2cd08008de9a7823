#!/usr/bin/env python

"""Find GitHub workflow runs by partial name."""

import argparse
import json
import re
import sys
import traceback
import webbrowser

from tqdm import tqdm

from fetch_workflow_runs import RUN_STATUSES, RunFilter, fetch_runs
from github_api import (
    GitHubApiError,
    MissingTokenError,
    format_api_error,
    get_github_token,
    resolve_workflow_id,
)
from time_window import InvalidSinceError, parse_datetime_string, parse_since

DEFAULT_SINCE = "7d"
REPO_RE = re.compile(r"^[^/]+/[^/]+$")

EXIT_OK = 0
EXIT_NO_MATCH = 1
EXIT_INVALID_INPUT = 2

EPILOG = """\
examples:
  rungrep "deploy" -r org/repo                  Search runs matching "deploy" (last 7 days)
  rungrep "deploy" -r org/repo --since 30d      Search runs from last 30 days
  rungrep "deploy" -r org/repo -t 5             Top 5 matching runs
  rungrep "deploy" -r org/repo -l --json        Latest matching run as JSON
  rungrep "deploy" -r org/repo -l --open        Open latest matching run in browser
  rungrep "fix" -r org/repo -s success          Only successful runs matching "fix"

auth:
  Uses GITHUB_TOKEN env var, or falls back to `gh auth token`.

JSON output schema:
  [{ "name": "...", "date": "ISO-8601", "url": "https://..." }]

exit codes:
  0  Matching runs found
  1  No matches, workflow not found, or API error
  2  Invalid input (bad repo format, bad status, missing auth)

Name matching is case-insensitive and partial (substring match). Results are
ordered newest-first. Primary output goes to stdout; errors and progress to
stderr.
"""

###############################################################################
# Output
###############################################################################


def filter_runs(runs: list, name: str) -> list:
    """Keep runs whose display title contains name, ignoring case."""
    needle = name.lower()
    return [run for run in runs if needle in run.display_title.lower()]


def format_date(iso: str) -> str:
    """Render an API timestamp in the local timezone."""
    return parse_datetime_string(iso).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def print_runs(runs: list, as_json: bool, file=None) -> None:
    """
    Print runs as a table, or as a JSON list of {name, date, url}.

    Args:
        runs: WorkflowRun objects to print
        as_json: Emit JSON instead of a table
        file: Output stream (defaults to stdout)
    """
    if file is None:
        file = sys.stdout

    if as_json:
        output = [
            {"name": run.display_title, "date": run.created_at, "url": run.html_url}
            for run in runs
        ]
        print(json.dumps(output, indent=2), file=file)
        return

    dates = [format_date(run.created_at) for run in runs]
    max_name = max([len(run.display_title) for run in runs] + [4])
    max_date = max([len(date) for date in dates] + [4])

    header = f"{'NAME'.ljust(max_name)}  {'DATE'.ljust(max_date)}  URL"
    print(header, file=file)
    print("─" * len(header), file=file)
    for run, date in zip(runs, dates):
        print(
            f"{run.display_title.ljust(max_name)}  {date.ljust(max_date)}"
            f"  {run.html_url}",
            file=file,
        )


def open_url(url: str) -> None:
    webbrowser.open(url)


###############################################################################
# CLI
###############################################################################


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        number = 0
    if number < 1:
        raise argparse.ArgumentTypeError(
            f'Invalid --top value "{value}". Must be a positive integer.'
        )
    return number


def get_parser():
    parser = argparse.ArgumentParser(
        prog="rungrep",
        description=__doc__,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("name", help="Partial run name to match")
    parser.add_argument(
        "-r", "--repo", required=True, help="GitHub repository (owner/repo)"
    )
    parser.add_argument("-b", "--branch", help="Filter by branch")
    parser.add_argument("-a", "--action", help="Workflow name to search within")
    parser.add_argument(
        "-s", "--status", help=f"Filter by status ({', '.join(RUN_STATUSES)})"
    )
    parser.add_argument(
        "-t", "--top", type=positive_int, help="Return top N matching runs"
    )
    parser.add_argument(
        "-l",
        "--last",
        action="store_true",
        help="Return only the latest matching run",
    )
    parser.add_argument(
        "--since",
        help=(
            "Only search runs newer than duration (7d, 24h, 2w) or date"
            f" (2026-02-01). Default: {DEFAULT_SINCE}, or unbounded with --top"
        ),
    )
    parser.add_argument(
        "--open",
        action="store_true",
        help="Open the run in browser (requires exactly one match)",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=1,
        help="Increase verbosity level (use -v, -vv, etc.)",
    )
    return parser


def rungrep(args) -> int:
    """
    Run one search described by parsed command-line arguments.

    Returns:
        Process exit code
    """
    verbosity = args.verbose

    if args.status and args.status not in RUN_STATUSES:
        print(
            f'Error: Invalid status "{args.status}". Valid values:'
            f" {', '.join(RUN_STATUSES)}",
            file=sys.stderr,
        )
        return EXIT_INVALID_INPUT

    if not REPO_RE.match(args.repo):
        print(
            f'Error: Invalid repo format "{args.repo}". Expected owner/repo.',
            file=sys.stderr,
        )
        return EXIT_INVALID_INPUT

    since_value = args.since
    if since_value is None and args.top is None:
        since_value = DEFAULT_SINCE

    since = None
    if since_value is not None:
        try:
            since = parse_since(since_value)
        except InvalidSinceError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_INVALID_INPUT
        if verbosity >= 2:
            print(f"Since cutoff: {since.isoformat()}", file=sys.stderr)

    try:
        token = get_github_token(verbosity=verbosity)
    except MissingTokenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    pbar = tqdm(desc="Searching runs", unit="run", file=sys.stderr, leave=False)

    def on_progress(fetched: int, total: int) -> None:
        pbar.total = total
        pbar.n = fetched
        pbar.refresh()

    try:
        workflow_id = None
        if args.action:
            workflow_id = resolve_workflow_id(
                args.repo, args.action, token, verbosity=verbosity
            )
            if workflow_id is None:
                print(
                    f'Error: Workflow "{args.action}" not found in {args.repo}.',
                    file=sys.stderr,
                )
                return EXIT_NO_MATCH

        run_filter = RunFilter(
            branch=args.branch,
            status=args.status,
            workflow_id=workflow_id,
            since=since,
        )
        runs = fetch_runs(
            args.repo,
            run_filter,
            token,
            on_progress=on_progress,
            verbosity=verbosity,
        )
    except GitHubApiError as e:
        sys.stderr.write(format_api_error(e, args.repo))
        return EXIT_NO_MATCH
    finally:
        pbar.close()

    matches = filter_runs(runs, args.name)
    if verbosity >= 2:
        print(
            f'Found {len(matches)} of {len(runs)} runs matching "{args.name}"',
            file=sys.stderr,
        )

    if not matches:
        print("No matching runs found.", file=sys.stderr)
        return EXIT_NO_MATCH

    if args.last:
        matches = matches[:1]
    elif args.top is not None:
        matches = matches[: args.top]

    print_runs(matches, args.json)

    if args.open:
        if len(matches) != 1:
            print(
                "Error: --open requires exactly one match, but found"
                f" {len(matches)}.",
                file=sys.stderr,
            )
            return EXIT_NO_MATCH
        open_url(matches[0].html_url)

    return EXIT_OK


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    parser = get_parser()
    args = parser.parse_args(argv)
    try:
        return rungrep(args)
    except Exception:  # pylint: disable=broad-except
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
