from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from flow_metrics.history import Timestamp, parse_timestamp
from flow_metrics.transition_extractor import CanonicalTimestamps


MS_PER_DAY = 86_400_000

SOURCE_PHASES = "phases"
SOURCE_DIRECT = "direct"
SOURCE_APPROXIMATED = "approximated"


@dataclass(frozen=True)
class PhaseDurations:
    in_progress_to_in_review_days: Optional[float] = None
    in_review_to_ready_for_qa_days: Optional[float] = None
    ready_for_qa_to_done_days: Optional[float] = None
    in_review_to_done_days: Optional[float] = None
    in_review_to_done_source: Optional[str] = None  # phases, direct or approximated

    @property
    def in_review_to_done_is_approximation(self) -> bool:
        return self.in_review_to_done_source == SOURCE_APPROXIMATED


def round_days(days: float) -> float:
    # Half-up, so x.xx5 never rounds down to even
    return math.floor(days * 100 + 0.5) / 100


def days_between(start: Optional[Timestamp], end: Optional[Timestamp]) -> Optional[float]:
    """
    Elapsed days from start to end, rounded to 2 decimals.

    Returns None if either endpoint is missing or does not parse, or if end is before start.
    """
    start_at = parse_timestamp(start)
    end_at = parse_timestamp(end)
    if start_at is None or end_at is None:
        return None
    elapsed_ms = (end_at - start_at).total_seconds() * 1000
    if elapsed_ms < 0:
        return None
    return round_days(elapsed_ms / MS_PER_DAY)


def calculate_durations(timestamps: CanonicalTimestamps) -> PhaseDurations:
    """
    Convert canonical timestamps into phase durations.

    The composite in-review-to-done duration is taken from the first rule that applies:
    1. sum of the review-to-QA and QA-to-done phases
    2. in review to the direct In Review -> Done transition
    3. in review to the Ready to QA -> Done transition (approximation: QA entry missing)

    Args:
        timestamps: Canonical timestamps of one issue

    Returns:
        PhaseDurations with every computable field populated
    """
    in_progress_to_in_review = days_between(timestamps.backlog_to_in_progress, timestamps.in_progress_to_in_review)
    in_review_to_ready_for_qa = days_between(timestamps.in_progress_to_in_review, timestamps.in_review_to_ready_for_qa)
    ready_for_qa_to_done = days_between(timestamps.in_review_to_ready_for_qa, timestamps.ready_for_qa_to_done)

    in_review_to_done: Optional[float] = None
    source: Optional[str] = None

    if in_review_to_ready_for_qa is not None and ready_for_qa_to_done is not None:
        in_review_to_done = round_days(in_review_to_ready_for_qa + ready_for_qa_to_done)
        source = SOURCE_PHASES
    else:
        direct = days_between(timestamps.in_progress_to_in_review, timestamps.in_review_to_done_direct)
        if direct is not None:
            in_review_to_done = direct
            source = SOURCE_DIRECT
        else:
            approximated = days_between(timestamps.in_progress_to_in_review, timestamps.ready_for_qa_to_done)
            if approximated is not None:
                in_review_to_done = approximated
                source = SOURCE_APPROXIMATED

    return PhaseDurations(
        in_progress_to_in_review_days=in_progress_to_in_review,
        in_review_to_ready_for_qa_days=in_review_to_ready_for_qa,
        ready_for_qa_to_done_days=ready_for_qa_to_done,
        in_review_to_done_days=in_review_to_done,
        in_review_to_done_source=source,
    )
