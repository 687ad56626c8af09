from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from flow_metrics.config import WorkflowConfig
from flow_metrics.feedback_cycle_strategy import (
    PATTERN_IN_QA,
    PATTERN_READY_TO_QA,
    FeedbackCycleStrategy,
    QAFeedbackCycle,
)
from flow_metrics.history import HistoryEvent, sort_events


def has_qa_feedback_label(labels: Optional[Iterable[Any]], label: str = WorkflowConfig.qa_feedback_label) -> bool:
    """
    True if any label name contains the QA feedback label, ignoring case.

    A missing or malformed label set counts as no label.
    """
    if labels is None or isinstance(labels, (str, bytes)):
        return False
    try:
        names = list(labels)
    except TypeError:
        return False
    needle = label.lower()
    return any(isinstance(name, str) and needle in name.lower() for name in names)


@dataclass(frozen=True)
class FeedbackCycleResult:
    ready_to_qa_cycles: Tuple[QAFeedbackCycle, ...] = ()
    in_qa_cycles: Tuple[QAFeedbackCycle, ...] = ()

    @property
    def primary_pattern(self) -> Optional[str]:
        if self.ready_to_qa_cycles:
            return PATTERN_READY_TO_QA
        if self.in_qa_cycles:
            return PATTERN_IN_QA
        return None

    @property
    def primary_cycles(self) -> Tuple[QAFeedbackCycle, ...]:
        """Ready-to-QA cycles, falling back to In-QA cycles only when there are none."""
        return self.ready_to_qa_cycles or self.in_qa_cycles

    @property
    def iterations(self) -> int:
        return len(self.primary_cycles)


class FeedbackCycleDetector:
    """
    Runs both feedback-cycle patterns over an issue's history and selects the primary result.

    - Pattern "readyToQa" (primary): a cycle opens when the issue leaves Ready to QA
    - Pattern "inQa" (fallback): a cycle opens when the issue leaves In QA, and
      re-entering In QA restarts the open cycle

    Only issues carrying the QA feedback label are scanned.
    """

    def __init__(self, states: WorkflowConfig = WorkflowConfig()):
        self.qa_feedback_label = states.qa_feedback_label
        self.ready_to_qa_strategy = FeedbackCycleStrategy(
            anchor_state=states.ready_for_qa,
            return_state=states.ready_for_qa,
            pattern_type=PATTERN_READY_TO_QA,
        )
        # TODO: confirm with dashboard owners whether the restart rule should also apply to readyToQa
        self.in_qa_strategy = FeedbackCycleStrategy(
            anchor_state=states.in_qa,
            return_state=states.ready_for_qa,
            pattern_type=PATTERN_IN_QA,
            restart_on_reentry=True,
        )

    def detect(self, events: Iterable[HistoryEvent], labels: Optional[Sequence[str]]) -> FeedbackCycleResult:
        if not has_qa_feedback_label(labels, self.qa_feedback_label):
            return FeedbackCycleResult()

        ordered = sort_events(events)
        return FeedbackCycleResult(
            ready_to_qa_cycles=tuple(self.ready_to_qa_strategy.detect(ordered)),
            in_qa_cycles=tuple(self.in_qa_strategy.detect(ordered)),
        )

    def get_pattern_info(self, events: Iterable[HistoryEvent], labels: Optional[Sequence[str]]) -> Dict[str, Any]:
        """
        Get information about which pattern would be selected for a given history.

        Useful for comparing the two heuristics on real data.
        """
        labelled = has_qa_feedback_label(labels, self.qa_feedback_label)
        result = self.detect(events, labels)

        if not labelled:
            reason = "no QA feedback label"
        elif result.ready_to_qa_cycles:
            reason = f"readyToQa found {len(result.ready_to_qa_cycles)} cycle(s)"
        elif result.in_qa_cycles:
            reason = f"readyToQa found no cycles, inQa found {len(result.in_qa_cycles)}"
        else:
            reason = "no completed cycles"

        return {
            "pattern": result.primary_pattern,
            "has_qa_feedback_label": labelled,
            "ready_to_qa_count": len(result.ready_to_qa_cycles),
            "in_qa_count": len(result.in_qa_cycles),
            "iterations": result.iterations,
            "reason": reason,
        }
