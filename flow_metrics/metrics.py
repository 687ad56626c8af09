from __future__ import annotations

import datetime as dt
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import pytz
from dateutil import parser

from flow_metrics.config import DEFAULT_IN_QA, DEFAULT_QA_FEEDBACK_LABEL, get_workflow_config
from flow_metrics.duration_calculator import MS_PER_DAY, round_days
from flow_metrics.feedback_cycle_detector import has_qa_feedback_label
from flow_metrics.feedback_cycle_strategy import QAFeedbackCycle
from flow_metrics.history import parse_timestamp
from flow_metrics.issue_processor import ProcessedIssue


COMPLETED_STATUS_TYPE = "completed"


@dataclass(frozen=True)
class TimeWindow:
    start: Optional[dt.datetime] = None  # inclusive
    end: Optional[dt.datetime] = None    # inclusive


@dataclass(frozen=True)
class IssueFilters:
    assignees: Sequence[str] = ()
    statuses: Sequence[str] = ()
    sprints: Sequence[str] = ()
    labels: Sequence[str] = ()
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    min_estimate: Optional[float] = None
    max_estimate: Optional[float] = None


def time_to_fix_days(cycle: QAFeedbackCycle) -> float:
    """Days from the last status change before returning to Ready to QA, rounded to 2 decimals."""
    elapsed = (cycle.return_to_ready_for_qa - cycle.work_start).total_seconds() * 1000
    return round_days(elapsed / MS_PER_DAY)


def _round(value: float, digits: int) -> float:
    return float(np.round(value, digits))


def percentile(values: Sequence[float], p: float) -> Optional[float]:
    if not values:
        return None
    return float(np.percentile(np.array(values, dtype=float), p))


def summarize_durations(days: Sequence[Optional[float]]) -> dict:
    values = [d for d in days if d is not None]
    if not values:
        return {"count": 0}
    return {
        "count": len(values),
        "avg_days": float(np.mean(values)),
        "median_days": percentile(values, 50),
        "p75_days": percentile(values, 75),
        "p90_days": percentile(values, 90),
        "max_days": max(values),
    }


def summarize_lifecycle(issues: Sequence[ProcessedIssue]) -> dict:
    """Headline numbers: issue count, completion rate and average phase durations."""
    total = len(issues)
    done = sum(1 for i in issues if i.status_type == COMPLETED_STATUS_TYPE)
    in_progress_to_review = [i.durations.in_progress_to_in_review_days for i in issues
                             if i.durations.in_progress_to_in_review_days is not None]
    review_to_done = [i.durations.in_review_to_done_days for i in issues
                      if i.durations.in_review_to_done_days is not None]
    approximated = sum(1 for i in issues if i.durations.in_review_to_done_is_approximation)

    return {
        "total_issues": total,
        "completion_rate": _round(done / total * 100, 1) if total else 0.0,
        "avg_in_progress_to_in_review_days": _round(np.mean(in_progress_to_review), 2) if in_progress_to_review else 0.0,
        "avg_in_review_to_done_days": _round(np.mean(review_to_done), 2) if review_to_done else 0.0,
        "approximated_in_review_to_done": approximated,
    }


def summarize_qa_feedback(
    issues: Sequence[ProcessedIssue],
    in_qa_state: str = DEFAULT_IN_QA,
    label: str = DEFAULT_QA_FEEDBACK_LABEL,
) -> dict:
    """Iteration counts and time-to-fix figures across issues with the QA feedback label."""
    qa_issues = [i for i in issues if has_qa_feedback_label(i.labels, label)]
    total_iterations = sum(i.qa_feedback_iterations for i in qa_issues)
    with_iterations = [i for i in qa_issues if i.qa_feedback_iterations > 0]
    times_to_fix = [time_to_fix_days(c) for i in qa_issues for c in i.qa_feedback_cycles]

    return {
        "qa_feedback_issues": len(qa_issues),
        "total_iterations": total_iterations,
        "avg_iterations": _round(total_iterations / len(with_iterations), 1) if with_iterations else 0.0,
        "avg_time_to_fix_days": _round(np.mean(times_to_fix), 2) if times_to_fix else 0.0,
        "total_time_to_fix_days": _round(sum(times_to_fix), 2),
        "in_qa_with_feedback": sum(1 for i in qa_issues if i.status == in_qa_state),
    }


def _parse_bound(value: Optional[str], tz: str, end_of_day: bool = False) -> Optional[dt.datetime]:
    if not value:
        return None
    try:
        bound = parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    if end_of_day:
        bound = bound.replace(hour=23, minute=59, second=59, microsecond=999000)
    if bound.tzinfo is None:
        bound = pytz.timezone(tz).localize(bound)
    return bound


def filter_window(filters: IssueFilters, tz: Optional[str] = None) -> TimeWindow:
    """
    Build the started-date window; bounds that do not parse are ignored.

    Naive bounds are localized to tz, defaulting to the configured FLOW_TIMEZONE.
    """
    tz = tz or get_workflow_config().timezone
    return TimeWindow(
        start=_parse_bound(filters.start_date, tz),
        end=_parse_bound(filters.end_date, tz, end_of_day=True),
    )


def filter_issues(issues: Iterable[ProcessedIssue], filters: IssueFilters, tz: Optional[str] = None) -> List[ProcessedIssue]:
    """
    Apply dashboard filters.

    Date bounds apply to when work started (Todo -> In Progress); issues that never
    started are excluded once either bound is set.
    """
    filtered = list(issues)

    if filters.assignees:
        filtered = [i for i in filtered if i.assignee in filters.assignees]
    if filters.statuses:
        filtered = [i for i in filtered if i.status in filters.statuses]
    if filters.sprints:
        filtered = [i for i in filtered if i.sprint and i.sprint in filters.sprints]
    if filters.labels:
        filtered = [i for i in filtered if any(label in filters.labels for label in i.labels)]

    window = filter_window(filters, tz)
    if window.start is not None or window.end is not None:
        def in_window(issue: ProcessedIssue) -> bool:
            started = parse_timestamp(issue.timestamps.backlog_to_in_progress)
            if started is None:
                return False
            if window.start is not None and started < window.start:
                return False
            if window.end is not None and started > window.end:
                return False
            return True

        filtered = [i for i in filtered if in_window(i)]

    if filters.min_estimate is not None:
        filtered = [i for i in filtered if i.estimate_points is not None and i.estimate_points >= filters.min_estimate]
    if filters.max_estimate is not None:
        filtered = [i for i in filtered if i.estimate_points is not None and i.estimate_points <= filters.max_estimate]

    return filtered


def available_sprints(issues: Iterable[ProcessedIssue]) -> List[str]:
    return sorted({i.sprint for i in issues if i.sprint})


def available_labels(issues: Iterable[ProcessedIssue]) -> List[str]:
    return sorted({label for i in issues for label in i.labels})


def issues_to_frame(issues: Iterable[ProcessedIssue]) -> pd.DataFrame:
    """One row per issue, columns as in ProcessedIssue.to_record()."""
    return pd.DataFrame([i.to_record() for i in issues])


def available_assignees(issues: Iterable[ProcessedIssue]) -> List[str]:
    return sorted({i.assignee for i in issues})


def status_counts(issues: Iterable[ProcessedIssue]) -> Dict[str, int]:
    """Issue count per status, in order of first appearance."""
    return dict(Counter(i.status for i in issues if i.status))


def durations_by_assignee(issues: Iterable[ProcessedIssue]) -> List[dict]:
    """
    Average phase durations per assignee.

    Each average covers only the issues where that phase was measured; an
    assignee with no measured phase is left out. Rows are ordered by the sum
    of the three averages, longest first.
    """
    phases = {}
    for issue in issues:
        durations = issue.durations
        bucket = phases.setdefault(issue.assignee, ([], [], []))
        for values, days in zip(bucket, (
            durations.in_progress_to_in_review_days,
            durations.in_review_to_ready_for_qa_days,
            durations.ready_for_qa_to_done_days,
        )):
            if days is not None:
                values.append(days)

    rows = []
    for assignee, (in_progress, in_review, ready_for_qa) in phases.items():
        row = {
            "assignee": assignee,
            "avg_in_progress_to_in_review_days": _round(np.mean(in_progress), 2) if in_progress else 0.0,
            "avg_in_review_to_ready_for_qa_days": _round(np.mean(in_review), 2) if in_review else 0.0,
            "avg_ready_for_qa_to_done_days": _round(np.mean(ready_for_qa), 2) if ready_for_qa else 0.0,
        }
        row["total_days"] = _round(
            row["avg_in_progress_to_in_review_days"]
            + row["avg_in_review_to_ready_for_qa_days"]
            + row["avg_ready_for_qa_to_done_days"],
            2,
        )
        if row["total_days"] > 0:
            rows.append(row)

    return sorted(rows, key=lambda r: r["total_days"], reverse=True)
