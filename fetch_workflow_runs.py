#!/usr/bin/env python

"""Fetch the complete set of GitHub Actions workflow runs for a repository.

The runs endpoint stops returning new data once a single filtered query has
matched more than 1000 runs, even though total_count keeps reporting the real
figure. fetch_runs works around this by narrowing the "created" range to
progressively older windows until the history is covered.
"""

import datetime
import sys

from collections.abc import Callable
from dataclasses import dataclass, field

from github_api import UnexpectedResponseError, github_get
from time_window import format_api_timestamp, parse_datetime_string

DEFAULT_PER_PAGE = 100
API_RESULT_CAP = 1000  # Max runs the API will page through for one query
WINDOW_SLIDE_BACKOFF = datetime.timedelta(seconds=1)
DETAIL_VERBOSITY = 2  # Verbosity level required to show per-page details

RUN_STATUSES = (
    "completed",
    "action_required",
    "cancelled",
    "failure",
    "neutral",
    "skipped",
    "stale",
    "success",
    "timed_out",
    "in_progress",
    "queued",
    "requested",
    "waiting",
    "pending",
)

ProgressCallback = Callable[[int, int], None]

###############################################################################
# Data Structures
###############################################################################


@dataclass(frozen=True)
class WorkflowRun:
    """One workflow run as returned by the API."""

    id: int
    display_title: str
    created_at: str
    html_url: str
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, item: dict) -> "WorkflowRun":
        """
        Build a WorkflowRun from one entry of the workflow_runs array.

        Raises:
            ValueError: If the entry has no id or created_at
        """
        run_id = item.get("id")
        created_at = item.get("created_at")
        if run_id is None or not created_at:
            raise ValueError(
                f"Workflow run is missing 'id' or 'created_at': {item!r}"
            )
        return cls(
            id=run_id,
            display_title=item.get("display_title") or "",
            created_at=created_at,
            html_url=item.get("html_url") or "",
            raw=item,
        )

    @property
    def created_time(self) -> datetime.datetime:
        return parse_datetime_string(self.created_at)


@dataclass(frozen=True)
class RunFilter:
    """Constraints applied to every query of one retrieval."""

    branch: str | None = None
    status: str | None = None
    workflow_id: int | None = None
    since: datetime.datetime | None = None

    def __post_init__(self):
        if self.status is not None and self.status not in RUN_STATUSES:
            raise ValueError(
                f'Invalid status "{self.status}". Valid values:'
                f" {', '.join(RUN_STATUSES)}"
            )
        # Naive times are taken as UTC, like parse_datetime_string does.
        if self.since is not None and self.since.tzinfo is None:
            object.__setattr__(
                self, "since", self.since.replace(tzinfo=datetime.timezone.utc)
            )


@dataclass
class WindowState:
    """Accumulated state of one fetch_runs call, shared by all its windows."""

    upper_bound: datetime.datetime | None = None
    seen_ids: set[int] = field(default_factory=set)
    runs: list[WorkflowRun] = field(default_factory=list)
    overall_total: int = 0

    def add(self, run: WorkflowRun) -> bool:
        """Record a run unless its id was already seen. Returns True if added."""
        if run.id in self.seen_ids:
            return False
        self.seen_ids.add(run.id)
        self.runs.append(run)
        return True

    def oldest_created_time(self) -> datetime.datetime:
        return min(run.created_time for run in self.runs)


@dataclass
class WindowResult:
    """Outcome of paginating through a single time window."""

    new_runs: int = 0
    duplicates: int = 0
    max_total_count: int = 0
    hit_since_cutoff: bool = False
    pages: int = 0


###############################################################################
# Query construction
###############################################################################


def runs_path(repo: str, workflow_id: int | None = None) -> str:
    if workflow_id:
        return f"/repos/{repo}/actions/workflows/{workflow_id}/runs"
    return f"/repos/{repo}/actions/runs"


def created_range(
    since: datetime.datetime | None, upper_bound: datetime.datetime | None
) -> str | None:
    """
    Build the value of the "created" query parameter for a time window.

    Args:
        since: Inclusive lower bound, or None
        upper_bound: Inclusive upper bound, or None

    Returns:
        "<since>..<upper>", ">=<since>", "<=<upper>", or None if unbounded
    """
    if since is not None and upper_bound is not None:
        return f"{format_api_timestamp(since)}..{format_api_timestamp(upper_bound)}"
    if since is not None:
        return f">={format_api_timestamp(since)}"
    if upper_bound is not None:
        return f"<={format_api_timestamp(upper_bound)}"
    return None


def build_query_params(run_filter: RunFilter, upper_bound=None) -> dict:
    params = {}
    if run_filter.branch:
        params["branch"] = run_filter.branch
    if run_filter.status:
        params["status"] = run_filter.status
    params["per_page"] = DEFAULT_PER_PAGE

    created = created_range(run_filter.since, upper_bound)
    if created is not None:
        params["created"] = created
    return params


###############################################################################
# Core functions
###############################################################################


def fetch_window(
    repo: str,
    run_filter: RunFilter,
    token: str,
    state: WindowState,
    on_progress: ProgressCallback | None = None,
    verbosity: int = 1,
) -> WindowResult:
    """
    Page through every run in the window bounded by run_filter.since and
    state.upper_bound, adding unseen runs to state.

    Pagination stops after a short page, or as soon as a run older than
    run_filter.since is seen; the API returns runs newest-first, so no later
    page can hold anything newer.

    Args:
        repo: Repository as "owner/repo"
        run_filter: Fixed filters for this retrieval
        token: GitHub token
        state: Accumulator shared across windows, updated in place
        on_progress: Called after each page with (fetched, best-known total)
        verbosity: Verbosity level for output

    Returns:
        WindowResult describing what this window contributed
    """
    path = runs_path(repo, run_filter.workflow_id)
    params = build_query_params(run_filter, state.upper_bound)
    result = WindowResult()
    page = 1

    while True:
        params["page"] = page
        data = github_get(path, token, params=params, verbosity=verbosity)

        try:
            total_count = data["total_count"]
            items = data["workflow_runs"]
        except (KeyError, TypeError) as e:
            raise UnexpectedResponseError(
                f"Unexpected response shape from {path}: missing {e}"
            ) from e
        if not isinstance(total_count, int) or not isinstance(items, list):
            raise UnexpectedResponseError(
                f"Unexpected response shape from {path}: total_count={total_count!r},"
                f" workflow_runs of type {type(items).__name__}"
            )

        # total_count can differ between pages of the same query, so keep
        # the largest value seen.
        result.max_total_count = max(result.max_total_count, total_count)
        state.overall_total = max(state.overall_total, result.max_total_count)
        result.pages += 1

        for item in items:
            run = WorkflowRun.from_api(item)
            if run_filter.since is not None and run.created_time < run_filter.since:
                if verbosity >= DETAIL_VERBOSITY:
                    print(
                        f"Stopping pagination: run {run.id} older than --since"
                        " cutoff",
                        file=sys.stderr,
                    )
                result.hit_since_cutoff = True
                break
            if state.add(run):
                result.new_runs += 1
            else:
                result.duplicates += 1

        if verbosity >= DETAIL_VERBOSITY:
            print(
                f"Page {page}: fetched {len(items)} runs"
                f" (total_count: {total_count})",
                file=sys.stderr,
            )
        if on_progress is not None:
            on_progress(len(state.runs), state.overall_total)

        if result.hit_since_cutoff:
            break
        if len(items) < DEFAULT_PER_PAGE:
            break
        page += 1

    return result


def fetch_runs(
    repo: str,
    run_filter: RunFilter,
    token: str,
    on_progress: ProgressCallback | None = None,
    verbosity: int = 1,
) -> list:
    """
    Fetch every run matching run_filter, newest first.

    When a window reports more matches than the API will page through, the
    next window is bounded above by the oldest run fetched so far minus one
    second. This repeats until a window fits under the cap, reaches
    run_filter.since, or produces no new runs.

    Args:
        repo: Repository as "owner/repo"
        run_filter: Branch/status/workflow filters and optional since bound
        token: GitHub token
        on_progress: Called after each page with (fetched, best-known total)
        verbosity: Verbosity level for output

    Returns:
        List of WorkflowRun objects with unique ids, sorted by created_at
        descending

    Raises:
        GitHubApiError: On any non-2xx response; no partial result is returned
    """
    state = WindowState()

    while True:
        if verbosity >= DETAIL_VERBOSITY:
            print(
                "Fetching window: created"
                f" {created_range(run_filter.since, state.upper_bound) or '(any)'}",
                file=sys.stderr,
            )

        window = fetch_window(
            repo,
            run_filter,
            token,
            state,
            on_progress=on_progress,
            verbosity=verbosity,
        )

        if verbosity >= DETAIL_VERBOSITY:
            print(
                f"Window: {window.new_runs} new, {window.duplicates} duplicates"
                f" skipped over {window.pages} pages",
                file=sys.stderr,
            )

        if window.max_total_count <= API_RESULT_CAP or window.hit_since_cutoff:
            break
        if window.new_runs == 0:
            break

        state.upper_bound = state.oldest_created_time() - WINDOW_SLIDE_BACKOFF
        if verbosity >= DETAIL_VERBOSITY:
            print(
                "Sliding window: upper bound set to"
                f" {format_api_timestamp(state.upper_bound)}",
                file=sys.stderr,
            )

    if verbosity >= DETAIL_VERBOSITY:
        print(f"Total fetched: {len(state.runs)} runs", file=sys.stderr)

    return sorted(state.runs, key=lambda run: run.created_time, reverse=True)
