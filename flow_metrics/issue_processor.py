from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from flow_metrics.config import WorkflowConfig
from flow_metrics.duration_calculator import PhaseDurations, calculate_durations
from flow_metrics.feedback_cycle_detector import FeedbackCycleDetector, FeedbackCycleResult
from flow_metrics.feedback_cycle_strategy import QAFeedbackCycle
from flow_metrics.history import HistoryEvent, to_iso
from flow_metrics.transition_extractor import CanonicalTimestamps, extract_transitions


UNASSIGNED = "Unassigned"


@dataclass(frozen=True)
class RawIssue:
    """Issue fields as supplied by the fetch layer, before any normalization."""

    id: str
    number: Optional[int] = None
    title: Optional[str] = None
    assignee: Optional[str] = None
    estimate: Optional[float] = None
    status: Optional[str] = None
    status_type: Optional[str] = None
    cycle_name: Optional[str] = None
    cycle_number: Optional[int] = None
    labels: Optional[List[str]] = None
    history: List[HistoryEvent] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessedIssue:
    issue_id: str
    issue_number: Optional[int]
    issue_title: Optional[str]
    assignee: str
    sprint: Optional[str]
    estimate_points: Optional[float]
    status: Optional[str]
    status_type: Optional[str]
    labels: List[str]
    timestamps: CanonicalTimestamps = CanonicalTimestamps()
    durations: PhaseDurations = PhaseDurations()
    feedback: FeedbackCycleResult = FeedbackCycleResult()
    processing_error: Optional[str] = None

    @property
    def qa_feedback_iterations(self) -> int:
        return self.feedback.iterations

    @property
    def qa_feedback_cycles(self) -> List[QAFeedbackCycle]:
        return list(self.feedback.primary_cycles)

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the dict consumed by the presentation layer."""
        ts = self.timestamps
        durations = self.durations
        feedback = self.feedback
        return {
            "issue_id": self.issue_id,
            "issue_number": self.issue_number,
            "issue_title": self.issue_title,
            "assignee": self.assignee,
            "sprint": self.sprint,
            "estimate_points": self.estimate_points,
            "status": self.status,
            "status_type": self.status_type,
            "labels": list(self.labels),
            "in_progress_to_in_review_days": durations.in_progress_to_in_review_days,
            "in_review_to_ready_to_qa_days": durations.in_review_to_ready_for_qa_days,
            "ready_to_qa_to_done_days": durations.ready_for_qa_to_done_days,
            "in_review_to_done_days": durations.in_review_to_done_days,
            "in_review_to_done_source": durations.in_review_to_done_source,
            "backlog_to_in_progress_timestamp": to_iso(ts.backlog_to_in_progress),
            "in_progress_to_in_review_timestamp": to_iso(ts.in_progress_to_in_review),
            "in_review_to_ready_to_qa_timestamp": to_iso(ts.in_review_to_ready_for_qa),
            "ready_to_qa_to_done_timestamp": to_iso(ts.ready_for_qa_to_done),
            "in_review_to_done_timestamp": to_iso(ts.in_review_to_done_direct),
            "qa_feedback_iterations": feedback.iterations,
            "qa_feedback_pattern": feedback.primary_pattern,
            "qa_feedback_cycles": [cycle_to_record(c) for c in feedback.primary_cycles],
            "ready_to_qa_iterations": len(feedback.ready_to_qa_cycles),
            "ready_to_qa_cycles": [cycle_to_record(c) for c in feedback.ready_to_qa_cycles],
            "in_qa_iterations": len(feedback.in_qa_cycles),
            "in_qa_cycles": [cycle_to_record(c) for c in feedback.in_qa_cycles],
            "processing_error": self.processing_error,
        }


def cycle_to_record(cycle: QAFeedbackCycle) -> Dict[str, Any]:
    return {
        "feedback_start": to_iso(cycle.feedback_start),
        "work_start": to_iso(cycle.work_start),
        "return_to_ready_for_qa": to_iso(cycle.return_to_ready_for_qa),
        "pattern_type": cycle.pattern_type,
    }


def normalize_assignee(name: Optional[str]) -> str:
    if isinstance(name, str) and name.strip():
        return name
    return UNASSIGNED


def normalize_sprint(cycle_name: Optional[str], cycle_number: Optional[int]) -> Optional[str]:
    if isinstance(cycle_name, str) and cycle_name:
        return cycle_name
    if isinstance(cycle_number, int) and not isinstance(cycle_number, bool):
        return f"Cycle {cycle_number}"
    return None


def normalize_labels(labels: Any) -> List[str]:
    if labels is None or isinstance(labels, (str, bytes)):
        return []
    try:
        return [label for label in labels if isinstance(label, str)]
    except TypeError:
        return []


class IssueProcessor:
    """
    Turns raw issues into ProcessedIssue records.

    Every issue is processed independently; no state is shared between issues,
    so results do not depend on batch order.
    """

    def __init__(self, states: WorkflowConfig = WorkflowConfig()):
        self.states = states
        self.detector = FeedbackCycleDetector(states)

    def process(self, raw: RawIssue) -> ProcessedIssue:
        """
        Process a single issue. Exceptions propagate; use process_all for batches.

        Args:
            raw: Issue as supplied by the fetch layer

        Returns:
            ProcessedIssue with timestamps, durations and feedback cycles
        """
        history = list(raw.history or [])
        labels = normalize_labels(raw.labels)
        timestamps = extract_transitions(history, self.states)
        durations = calculate_durations(timestamps)
        feedback = self.detector.detect(history, labels)
        return ProcessedIssue(
            issue_id=raw.id,
            issue_number=raw.number,
            issue_title=raw.title,
            assignee=normalize_assignee(raw.assignee),
            sprint=normalize_sprint(raw.cycle_name, raw.cycle_number),
            estimate_points=raw.estimate,
            status=raw.status,
            status_type=raw.status_type,
            labels=labels,
            timestamps=timestamps,
            durations=durations,
            feedback=feedback,
        )

    def process_all(self, raws: Iterable[RawIssue]) -> List[ProcessedIssue]:
        """
        Process a batch of issues, preserving input order.

        An issue that fails to process is logged and returned as a partial record
        holding only its identity fields; it is never dropped.
        """
        results = []

        for raw in raws:
            try:
                results.append(self.process(raw))
            except Exception as e:
                logging.exception("Could not process issue %s", getattr(raw, "id", raw))
                results.append(self._partial(raw, e))

        return results

    def _partial(self, raw: Any, error: Exception) -> ProcessedIssue:
        return ProcessedIssue(
            issue_id=str(getattr(raw, "id", "")),
            issue_number=getattr(raw, "number", None),
            issue_title=getattr(raw, "title", None),
            assignee=normalize_assignee(getattr(raw, "assignee", None)),
            sprint=normalize_sprint(getattr(raw, "cycle_name", None), getattr(raw, "cycle_number", None)),
            estimate_points=getattr(raw, "estimate", None),
            status=getattr(raw, "status", None),
            status_type=getattr(raw, "status_type", None),
            labels=normalize_labels(getattr(raw, "labels", None)),
            processing_error=f"{type(error).__name__}: {error}",
        )


def process_issues(raws: Iterable[RawIssue], states: Optional[WorkflowConfig] = None) -> List[ProcessedIssue]:
    """Process a batch with the given (or default) workflow state names."""
    processor = IssueProcessor(states or WorkflowConfig())
    return processor.process_all(raws)
