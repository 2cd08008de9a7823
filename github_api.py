#!/usr/bin/env python

"""Authenticated access to the GitHub REST API."""

import os
import subprocess
import sys

import requests

API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
REQUEST_VERBOSITY = 3  # Verbosity level required to show each request

###############################################################################
# Errors
###############################################################################


class GitHubApiError(Exception):
    """A non-success HTTP response from the GitHub API."""

    def __init__(self, status: int, body: str, path: str):
        super().__init__(f"GitHub API {status}: {body}")
        self.status = status
        self.body = body
        self.path = path


class UnexpectedResponseError(RuntimeError):
    """A successful response whose body is not the expected JSON shape."""


class MissingTokenError(RuntimeError):
    """No GitHub credentials could be found."""


def format_api_error(err: GitHubApiError, repo: str) -> str:
    """
    Build a user-facing message, with remediation hints, for an API error.

    Args:
        err: The error raised by github_get
        repo: The "owner/repo" the user asked about

    Returns:
        Multi-line message ending in a newline
    """
    if err.status == 401:
        lines = [
            f'Error: Authentication failed for repository "{repo}".',
            "Suggestions:",
            "  - Verify that your GITHUB_TOKEN is valid and not expired",
            "  - Run `gh auth status` to check your GitHub CLI authentication",
            "  - Generate a new token at https://github.com/settings/tokens",
        ]
    elif err.status == 403:
        lines = [
            f'Error: Access denied to repository "{repo}".',
            "Suggestions:",
            "  - Check that your token has the 'repo' scope (or 'actions:read'"
            " for fine-grained tokens)",
            "  - Verify that you have access to this repository",
            "  - If using a fine-grained token, ensure it is authorized for this"
            " repository",
        ]
    elif err.status == 404:
        lines = [
            f'Error: Repository "{repo}" not found.',
            "Suggestions:",
            "  - Check the repository name for typos (expected format: owner/repo)",
            "  - Verify that the repository exists on GitHub",
            "  - If the repository is private, ensure your token has access to it",
        ]
    else:
        lines = [
            f"Error: GitHub API responded with status {err.status} for"
            f' repository "{repo}".',
            f"Details: {err}",
        ]
    return "\n".join(lines) + "\n"


###############################################################################
# Credentials
###############################################################################


def get_github_token(verbosity: int = 1) -> str:
    """
    Find a GitHub token.

    Uses the GITHUB_TOKEN environment variable, falling back to
    ``gh auth token`` from the GitHub CLI.

    Raises:
        MissingTokenError: If neither source yields a token
    """
    env_token = os.environ.get("GITHUB_TOKEN")
    if env_token:
        if verbosity >= 2:
            print("Auth: using GITHUB_TOKEN env var", file=sys.stderr)
        return env_token

    if verbosity >= 2:
        print("Auth: falling back to `gh auth token`", file=sys.stderr)
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise MissingTokenError(
            "No GITHUB_TOKEN env var and `gh auth token` failed.\n"
            "Set GITHUB_TOKEN or install/authenticate the GitHub CLI."
        ) from e

    token = result.stdout.strip()
    if not token:
        raise MissingTokenError("`gh auth token` returned an empty token.")
    return token


###############################################################################
# Requests
###############################################################################


def build_headers(token: str) -> dict:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
    }


def github_get(
    path: str,
    token: str,
    params: dict | None = None,
    verbosity: int = 1,
    timeout: int = 30,
) -> dict:
    """
    Make one GET request against the GitHub API.

    Failures are never retried here.

    Args:
        path: API path starting with '/', e.g. /repos/owner/repo/actions/runs
        token: GitHub token sent as a bearer credential
        params: Optional query parameters
        verbosity: Verbosity level for output
        timeout: Request timeout in seconds

    Returns:
        The decoded JSON body

    Raises:
        GitHubApiError: On any non-2xx response
        UnexpectedResponseError: If a 2xx body is not valid JSON
    """
    url = f"{API_URL}{path}"
    if verbosity >= REQUEST_VERBOSITY:
        print(f"GET {url} {params or ''}", file=sys.stderr)

    response = requests.get(
        url, headers=build_headers(token), params=params, timeout=timeout
    )

    if verbosity >= REQUEST_VERBOSITY:
        print(f"Response: {response.status_code} {response.reason}", file=sys.stderr)

    if not 200 <= response.status_code < 300:
        raise GitHubApiError(response.status_code, response.text, path)

    try:
        return response.json()
    except ValueError as e:
        raise UnexpectedResponseError(
            f"Response from {path} is not valid JSON: {e}"
        ) from e


def resolve_workflow_id(
    repo: str, workflow_name: str, token: str, verbosity: int = 1
) -> int | None:
    """
    Look up a workflow's numeric id by its name (case-insensitive, exact).

    Args:
        repo: Repository as "owner/repo"
        workflow_name: Display name of the workflow
        token: GitHub token

    Returns:
        The workflow id, or None if no workflow has that name
    """
    data = github_get(f"/repos/{repo}/actions/workflows", token, verbosity=verbosity)
    needle = workflow_name.lower()
    for workflow in data.get("workflows", []):
        if workflow.get("name", "").lower() == needle:
            return workflow["id"]
    return None
