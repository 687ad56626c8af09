"""Mapping raw Linear GraphQL issue nodes into RawIssue instances."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from flow_metrics.history import HistoryEvent
from flow_metrics.issue_processor import RawIssue


def _name(node: Any) -> Optional[str]:
    if isinstance(node, dict):
        value = node.get("name")
        if isinstance(value, str):
            return value
    return None


def _nodes(value: Any) -> List[Any]:
    # Connections arrive as {"nodes": [...]}; plain lists are accepted too
    if isinstance(value, dict):
        value = value.get("nodes")
    if isinstance(value, list):
        return value
    return []


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def map_history_entry(entry: Dict[str, Any]) -> HistoryEvent:
    return HistoryEvent(
        timestamp=entry.get("updatedAt") or entry.get("createdAt"),
        from_state=_name(entry.get("fromState")),
        to_state=_name(entry.get("toState")),
    )


def map_labels(value: Any) -> List[str]:
    labels = []
    for node in _nodes(value):
        if isinstance(node, str):
            labels.append(node)
        else:
            name = _name(node)
            if name is not None:
                labels.append(name)
    return labels


def map_linear_issue(node: Dict[str, Any]) -> RawIssue:
    state = node.get("state") or {}
    cycle = node.get("cycle") or {}
    cycle_number = cycle.get("number") if isinstance(cycle, dict) else None
    return RawIssue(
        id=str(node.get("id") or ""),
        number=node.get("number"),
        title=node.get("title"),
        assignee=_name(node.get("assignee")),
        estimate=_number(node.get("estimate")),
        status=_name(state),
        status_type=state.get("type") if isinstance(state, dict) else None,
        cycle_name=_name(cycle),
        cycle_number=cycle_number if isinstance(cycle_number, int) and not isinstance(cycle_number, bool) else None,
        labels=map_labels(node.get("labels")),
        history=[map_history_entry(e) for e in _nodes(node.get("history")) if isinstance(e, dict)],
    )


def map_linear_issues(nodes: Iterable[Dict[str, Any]]) -> List[RawIssue]:
    return [map_linear_issue(n) for n in nodes]
