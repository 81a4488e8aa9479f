"""
Prometheus metrics for the review harness.

This module provides:
- GitHub API metrics (request count, latency, rate limit)
- Poller metrics (attempts, outcomes)
- Fixture reconciliation metrics (items closed/deleted per step)
"""

import time

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# GitHub API Metrics
# =============================================================================

GITHUB_API_REQUESTS_TOTAL = Counter(
    "harness_github_api_requests_total",
    "Total number of GitHub API requests",
    ["endpoint", "method", "status_code"],
)

GITHUB_API_DURATION_SECONDS = Histogram(
    "harness_github_api_duration_seconds",
    "GitHub API request duration in seconds",
    ["endpoint", "method"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

GITHUB_RATE_LIMIT_REMAINING = Gauge(
    "harness_github_rate_limit_remaining",
    "Remaining GitHub API rate limit",
)

GITHUB_RATE_LIMIT_RESET_SECONDS = Gauge(
    "harness_github_rate_limit_reset_seconds",
    "Seconds until GitHub rate limit resets",
)

# =============================================================================
# Poller Metrics
# =============================================================================

POLL_ATTEMPTS_TOTAL = Counter(
    "harness_poll_attempts_total",
    "Total number of comment list fetches made while polling",
)

POLL_OUTCOMES_TOTAL = Counter(
    "harness_poll_outcomes_total",
    "Terminal poll outcomes",
    ["state"],  # succeeded, timed_out, cancelled
)

POLL_DURATION_SECONDS = Histogram(
    "harness_poll_duration_seconds",
    "Time spent waiting for an automation comment",
    buckets=(10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

# =============================================================================
# Fixture Metrics
# =============================================================================

FIXTURE_ITEMS_RECONCILED_TOTAL = Counter(
    "harness_fixture_items_reconciled_total",
    "Number of fixture items written, closed or deleted",
    ["step"],  # seed_files, pull_requests, issues, branches, workflow_files, ...
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_github_api_call(
    endpoint: str,
    method: str,
    status_code: int,
    duration_seconds: float,
    rate_limit_remaining: int | None = None,
    rate_limit_reset: int | None = None,
) -> None:
    """
    Record metrics for a GitHub API call.

    Args:
        endpoint: API endpoint (e.g., "pulls", "contents")
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration
        rate_limit_remaining: Remaining rate limit (if available)
        rate_limit_reset: Rate limit reset timestamp (if available)
    """
    GITHUB_API_REQUESTS_TOTAL.labels(
        endpoint=endpoint,
        method=method,
        status_code=str(status_code),
    ).inc()

    GITHUB_API_DURATION_SECONDS.labels(
        endpoint=endpoint,
        method=method,
    ).observe(duration_seconds)

    if rate_limit_remaining is not None:
        GITHUB_RATE_LIMIT_REMAINING.set(rate_limit_remaining)

    if rate_limit_reset is not None:
        reset_in_seconds = max(0, rate_limit_reset - int(time.time()))
        GITHUB_RATE_LIMIT_RESET_SECONDS.set(reset_in_seconds)


def record_poll_attempt() -> None:
    POLL_ATTEMPTS_TOTAL.inc()


def record_poll_outcome(state: str, duration_seconds: float) -> None:
    """Record the terminal state of a poll and how long it waited."""
    POLL_OUTCOMES_TOTAL.labels(state=state).inc()
    POLL_DURATION_SECONDS.observe(duration_seconds)


def record_fixture_items(step: str, count: int) -> None:
    if count > 0:
        FIXTURE_ITEMS_RECONCILED_TOTAL.labels(step=step).inc(count)
