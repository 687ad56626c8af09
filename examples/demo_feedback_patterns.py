#!/usr/bin/env python3
"""
Demonstrate feedback pattern selection in the FeedbackCycleDetector.

This script builds mock Linear histories and shows which QA feedback pattern
the detector selects for each, along with the resulting processed record.
"""

from flow_metrics.config import configure_logging, get_workflow_config
from flow_metrics.feedback_cycle_detector import FeedbackCycleDetector
from flow_metrics.issue_processor import IssueProcessor
from flow_metrics.mappers import map_linear_issue
from flow_metrics.metrics import (
    IssueFilters,
    durations_by_assignee,
    filter_issues,
    status_counts,
    summarize_qa_feedback,
    time_to_fix_days,
)


def history_entry(updated_at, from_state, to_state):
    return {
        "updatedAt": updated_at,
        "fromState": {"name": from_state},
        "toState": {"name": to_state},
    }


def create_ready_to_qa_issue():
    """QA sends the issue back from Ready to QA twice."""
    return {
        "id": "demo-1",
        "number": 101,
        "title": "Checkout button misaligned",
        "assignee": {"name": "Alice"},
        "state": {"name": "Done", "type": "completed"},
        "cycle": {"name": None, "number": 12},
        "labels": {"nodes": [{"name": "QA Feedback"}]},
        "history": {"nodes": [
            history_entry("2025-01-01T10:00:00.000Z", "Todo", "In Progress"),
            history_entry("2025-01-02T10:00:00.000Z", "In Progress", "In Review"),
            history_entry("2025-01-03T10:00:00.000Z", "In Review", "Ready to QA"),
            history_entry("2025-01-04T10:00:00.000Z", "Ready to QA", "In Progress"),
            history_entry("2025-01-04T22:00:00.000Z", "In Progress", "Ready to QA"),
            history_entry("2025-01-05T10:00:00.000Z", "Ready to QA", "In Progress"),
            history_entry("2025-01-06T10:00:00.000Z", "In Progress", "Ready to QA"),
            history_entry("2025-01-07T10:00:00.000Z", "Ready to QA", "Done"),
        ]},
    }


def create_in_qa_issue():
    """QA rejects the issue while it is In QA; Ready to QA is never left for a fix."""
    return {
        "id": "demo-2",
        "number": 102,
        "title": "Search results empty",
        "assignee": None,
        "state": {"name": "In QA", "type": "started"},
        "cycle": {"name": "Sprint Phoenix", "number": 13},
        "labels": {"nodes": [{"name": "qa feedback"}, {"name": "Bug"}]},
        "history": {"nodes": [
            history_entry("2025-01-10T10:00:00.000Z", "In QA", "In Progress"),
            history_entry("2025-01-11T10:00:00.000Z", "In Progress", "Ready to QA"),
            history_entry("2025-01-11T12:00:00.000Z", "Ready to QA", "In QA"),
        ]},
    }


def create_unlabelled_issue():
    """Same loop as the first issue but without the QA feedback label."""
    node = create_ready_to_qa_issue()
    node.update({"id": "demo-3", "number": 103, "labels": {"nodes": []}})
    return node


def main():
    config = get_workflow_config()
    configure_logging(config.log_level)

    detector = FeedbackCycleDetector(config)
    processor = IssueProcessor(config)

    print("=" * 80)
    print("FEEDBACK PATTERN SELECTION DEMO")
    print("=" * 80)

    issues = []
    for node in (create_ready_to_qa_issue(), create_in_qa_issue(), create_unlabelled_issue()):
        raw = map_linear_issue(node)
        info = detector.get_pattern_info(raw.history, raw.labels)
        issue = processor.process(raw)
        issues.append(issue)

        print()
        print(f"#{raw.number} {raw.title}")
        print(f"  Pattern:    {info['pattern']}")
        print(f"  Reason:     {info['reason']}")
        print(f"  readyToQa:  {info['ready_to_qa_count']} cycle(s)")
        print(f"  inQa:       {info['in_qa_count']} cycle(s)")
        print(f"  Assignee:   {issue.assignee}")
        print(f"  Sprint:     {issue.sprint}")
        print(f"  Review->Done: {issue.durations.in_review_to_done_days} days ({issue.durations.in_review_to_done_source})")
        for cycle in issue.qa_feedback_cycles:
            print(f"    fix took {time_to_fix_days(cycle)} days (returned {cycle.return_to_ready_for_qa.isoformat()})")

    print()
    print("QA feedback summary:")
    for key, value in summarize_qa_feedback(issues, config.in_qa, config.qa_feedback_label).items():
        print(f"  {key}: {value}")

    print()
    print(f"Issues by status: {status_counts(issues)}")
    for row in durations_by_assignee(issues):
        print(f"  {row['assignee']}: {row['total_days']} days across phases")

    started_first_week = filter_issues(issues, IssueFilters(end_date="2025-01-07"), tz=config.timezone)
    print(f"Started by 2025-01-07 ({config.timezone}): {[i.issue_number for i in started_first_week]}")


if __name__ == "__main__":
    main()
