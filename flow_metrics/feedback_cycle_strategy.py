from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from flow_metrics.history import HistoryEvent, sort_events


PATTERN_READY_TO_QA = "readyToQa"
PATTERN_IN_QA = "inQa"


@dataclass(frozen=True)
class QAFeedbackCycle:
    feedback_start: dt.datetime  # Issue left the anchor state
    work_start: dt.datetime  # Last status change before returning
    return_to_ready_for_qa: dt.datetime
    pattern_type: str


class FeedbackCycleStrategy:
    """
    Detects "left a QA state -> fixed -> returned to Ready to QA" loops.

    A single state machine serves both detection patterns; they differ only in
    the anchor state that opens a cycle and in whether re-entering the anchor
    restarts an open cycle.
    """

    def __init__(self, anchor_state: str, return_state: str, pattern_type: str, restart_on_reentry: bool = False):
        """
        Args:
            anchor_state: Leaving this state opens a cycle
            return_state: Entering this state closes an open cycle
            pattern_type: Label stored on every emitted cycle
            restart_on_reentry: If True, entering the anchor state while a cycle is
                open discards it and starts a new one at that event
        """
        self.anchor_state = anchor_state
        self.return_state = return_state
        self.pattern_type = pattern_type
        self.restart_on_reentry = restart_on_reentry

    def detect(self, events: Iterable[HistoryEvent]) -> List[QAFeedbackCycle]:
        """
        Scan an issue's history and return every completed cycle in chronological order.

        Events without both state names, or whose timestamp does not parse, are skipped.
        A cycle still open when the history ends is not reported.
        """
        cycles: List[QAFeedbackCycle] = []
        # (feedback_start, last_status_change) while a cycle is open
        open_cycle: Optional[Tuple[dt.datetime, dt.datetime]] = None

        for event in sort_events(events):
            if not event.has_states:
                continue
            occurred_at = event.occurred_at
            if occurred_at is None:
                continue
            from_state, to_state = event.from_state, event.to_state

            if open_cycle is None:
                if from_state == self.anchor_state and to_state != self.anchor_state:
                    open_cycle = (occurred_at, occurred_at)
                continue

            feedback_start, last_status_change = open_cycle

            if self.restart_on_reentry and to_state == self.anchor_state and from_state != self.anchor_state:
                open_cycle = (occurred_at, occurred_at)
            elif to_state == self.return_state and from_state != self.return_state:
                if occurred_at > feedback_start:
                    cycles.append(QAFeedbackCycle(
                        feedback_start=feedback_start,
                        work_start=last_status_change,
                        return_to_ready_for_qa=occurred_at,
                        pattern_type=self.pattern_type,
                    ))
                else:
                    logging.debug("Dropping zero-length %s cycle at %s", self.pattern_type, occurred_at)
                open_cycle = None
            elif from_state != to_state and to_state != self.return_state:
                open_cycle = (feedback_start, occurred_at)

        return cycles
