from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from flow_metrics.config import WorkflowConfig
from flow_metrics.history import HistoryEvent, Timestamp, sort_events


@dataclass(frozen=True)
class CanonicalTimestamps:
    backlog_to_in_progress: Optional[Timestamp] = None
    in_progress_to_in_review: Optional[Timestamp] = None
    in_review_to_ready_for_qa: Optional[Timestamp] = None
    ready_for_qa_to_done: Optional[Timestamp] = None
    in_review_to_done_direct: Optional[Timestamp] = None


class TransitionSlot:
    """Holds the timestamp of the first occurrence of one canonical transition."""

    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value: Optional[Timestamp] = None

    @property
    def value(self) -> Optional[Timestamp]:
        return self._value

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def set_once(self, value: Timestamp) -> bool:
        """Record the value unless the slot is already filled. Returns True if recorded."""
        if self.is_set or value is None or value == "":
            return False
        self._value = value
        return True


def canonical_transitions(states: WorkflowConfig) -> Dict[Tuple[str, str], str]:
    """Map each recognized (from, to) pair to its CanonicalTimestamps field."""
    return {
        (states.todo, states.in_progress): "backlog_to_in_progress",
        (states.in_progress, states.in_review): "in_progress_to_in_review",
        (states.in_review, states.ready_for_qa): "in_review_to_ready_for_qa",
        (states.ready_for_qa, states.done): "ready_for_qa_to_done",
        (states.in_review, states.done): "in_review_to_done_direct",
    }


def extract_transitions(events: Iterable[HistoryEvent], states: WorkflowConfig = WorkflowConfig()) -> CanonicalTimestamps:
    """
    Find the first occurrence of each canonical transition in an issue's history.

    An issue with no matching transitions gets an empty CanonicalTimestamps;
    it never left its initial state.

    Args:
        events: History events in any order
        states: Workflow state names

    Returns:
        CanonicalTimestamps with the earliest timestamp per transition
    """
    pairs = canonical_transitions(states)
    slots = {name: TransitionSlot() for name in pairs.values()}

    for event in sort_events(events):
        if not event.has_states or event.occurred_at is None:
            continue
        name = pairs.get((event.from_state, event.to_state))
        if name is not None:
            slots[name].set_once(event.timestamp)

    return CanonicalTimestamps(**{name: slot.value for name, slot in slots.items()})
