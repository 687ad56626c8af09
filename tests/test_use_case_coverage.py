"""
End-to-end coverage of the issue lifecycle use cases:
1. Direct review-to-done flow without a QA phase
2. Single QA feedback loop
3. QA feedback loop through intermediate states
4. Unsorted history
5. Repeated transitions keep their first occurrence
6. Both feedback patterns present
7. Malformed issue inside a batch
"""

import random
import unittest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from flow_metrics.history import HistoryEvent
from flow_metrics.issue_processor import IssueProcessor, RawIssue, process_issues
from tests.test_helpers import (
    QA_LABELS,
    create_history,
    days_to_datetime,
    days_to_iso,
)


def full_qa_history():
    return create_history(
        (0, "Todo", "In Progress"),
        (1, "In Progress", "In Review"),
        (2, "In Review", "Ready to QA"),
        (3, "Ready to QA", "In Progress"),
        (3.5, "In Progress", "In QA"),
        (4, "In QA", "Ready to QA"),
        (5, "Ready to QA", "Done"),
    )


class TestUseCase01DirectReviewToDone(unittest.TestCase):
    """
    Use Case 1: Issue skips the QA phase
    - Todo -> In Progress -> In Review -> Done
    - Composite duration comes from the direct In Review -> Done transition
    """

    def test_direct_flow(self):
        raw = RawIssue(
            id="ISS-1",
            number=1,
            history=create_history(
                (0, "Todo", "In Progress"),
                (2, "In Progress", "In Review"),
                (5, "In Review", "Done"),
            ),
        )

        record = IssueProcessor().process(raw).to_record()

        self.assertEqual(record["in_progress_to_in_review_days"], 2.0)
        self.assertEqual(record["in_review_to_done_days"], 3.0)
        self.assertEqual(record["in_review_to_done_source"], "direct")
        self.assertIsNone(record["in_review_to_ready_to_qa_days"])
        self.assertIsNone(record["ready_to_qa_to_done_days"])
        self.assertIsNone(record["in_review_to_ready_to_qa_timestamp"])
        self.assertIsNone(record["ready_to_qa_to_done_timestamp"])
        self.assertEqual(record["in_review_to_done_timestamp"], days_to_iso(5))
        self.assertEqual(record["qa_feedback_iterations"], 0)
        self.assertEqual(record["qa_feedback_cycles"], [])


class TestUseCase02SingleFeedbackLoop(unittest.TestCase):
    """
    Use Case 2: QA sends the issue back once
    - Ready to QA -> In Progress -> Ready to QA
    """

    def test_single_loop(self):
        raw = RawIssue(
            id="ISS-2",
            labels=QA_LABELS,
            history=create_history(
                (0, "Ready to QA", "In Progress"),
                (1, "In Progress", "Ready to QA"),
            ),
        )

        issue = IssueProcessor().process(raw)

        self.assertEqual(issue.qa_feedback_iterations, 1)
        self.assertEqual(issue.feedback.primary_pattern, "readyToQa")
        self.assertEqual(len(issue.feedback.in_qa_cycles), 0)
        cycle = issue.qa_feedback_cycles[0]
        self.assertEqual(cycle.feedback_start, days_to_datetime(0))
        self.assertEqual(cycle.work_start, days_to_datetime(0))
        self.assertEqual(cycle.return_to_ready_for_qa, days_to_datetime(1))

        record = issue.to_record()
        self.assertEqual(record["qa_feedback_cycles"], [{
            "feedback_start": days_to_iso(0),
            "work_start": days_to_iso(0),
            "return_to_ready_for_qa": days_to_iso(1),
            "pattern_type": "readyToQa",
        }])
        self.assertEqual(record["ready_to_qa_iterations"], 1)
        self.assertEqual(record["in_qa_iterations"], 0)


class TestUseCase03LoopThroughIntermediateStates(unittest.TestCase):
    """
    Use Case 3: Work passes through another state before returning to Ready to QA
    - work start moves to the last status change
    """

    def test_work_start_follows_last_change(self):
        raw = RawIssue(
            id="ISS-3",
            labels=QA_LABELS,
            history=create_history(
                (0, "Ready to QA", "In Progress"),
                (0.5, "In Progress", "In QA"),
                (1, "In QA", "Ready to QA"),
            ),
        )

        issue = IssueProcessor().process(raw)

        self.assertEqual(issue.qa_feedback_iterations, 1)
        cycle = issue.qa_feedback_cycles[0]
        self.assertEqual(cycle.feedback_start, days_to_datetime(0))
        self.assertEqual(cycle.work_start, days_to_datetime(0.5))
        self.assertEqual(cycle.return_to_ready_for_qa, days_to_datetime(1))


class TestUseCase04UnsortedHistory(unittest.TestCase):
    """
    Use Case 4: The fetch layer returns history in arbitrary order
    """

    def test_shuffled_history_matches_sorted(self):
        history = full_qa_history()
        shuffled = list(history)
        random.Random(7).shuffle(shuffled)
        reversed_history = list(reversed(history))

        processor = IssueProcessor()
        expected = processor.process(RawIssue(id="ISS-4", labels=QA_LABELS, history=history)).to_record()

        for variant in (shuffled, reversed_history):
            actual = processor.process(RawIssue(id="ISS-4", labels=QA_LABELS, history=variant)).to_record()
            self.assertEqual(actual, expected)

        self.assertEqual(expected["in_review_to_done_source"], "phases")
        self.assertEqual(expected["in_review_to_done_days"], 4.0)
        self.assertEqual(expected["qa_feedback_iterations"], 1)

    def test_reprocessing_is_idempotent(self):
        raw = RawIssue(id="ISS-4", labels=QA_LABELS, history=full_qa_history())
        first = process_issues([raw])[0].to_record()
        second = process_issues([raw])[0].to_record()
        self.assertEqual(first, second)


class TestUseCase05FirstOccurrenceWins(unittest.TestCase):
    """
    Use Case 5: Issue bounces back to Todo and starts again
    """

    def test_earliest_timestamp_kept(self):
        raw = RawIssue(
            id="ISS-5",
            history=create_history(
                (0, "Todo", "In Progress"),
                (1, "In Progress", "Todo"),
                (3, "Todo", "In Progress"),
                (4, "In Progress", "In Review"),
                (5, "In Review", "In Progress"),
                (6, "In Progress", "In Review"),
            ),
        )

        record = IssueProcessor().process(raw).to_record()

        self.assertEqual(record["backlog_to_in_progress_timestamp"], days_to_iso(0))
        self.assertEqual(record["in_progress_to_in_review_timestamp"], days_to_iso(4))
        self.assertEqual(record["in_progress_to_in_review_days"], 4.0)


class TestUseCase06BothPatternsPresent(unittest.TestCase):
    """
    Use Case 6: History satisfies both feedback patterns
    - Ready-to-QA pattern stays primary, In-QA cycles kept for diagnostics
    """

    def test_ready_to_qa_pattern_is_primary(self):
        raw = RawIssue(
            id="ISS-6",
            labels=QA_LABELS,
            history=create_history(
                (0, "Ready to QA", "In QA"),
                (1, "In QA", "In Progress"),
                (2, "In Progress", "Ready to QA"),
            ),
        )

        record = IssueProcessor().process(raw).to_record()

        self.assertEqual(record["ready_to_qa_iterations"], 1)
        self.assertEqual(record["in_qa_iterations"], 1)
        self.assertEqual(record["qa_feedback_pattern"], "readyToQa")
        self.assertEqual(record["qa_feedback_cycles"], record["ready_to_qa_cycles"])
        self.assertEqual(record["qa_feedback_cycles"][0]["work_start"], days_to_iso(1))

    def test_in_qa_pattern_used_when_ready_to_qa_finds_nothing(self):
        raw = RawIssue(
            id="ISS-6b",
            labels=QA_LABELS,
            history=create_history(
                (0, "In QA", "In Progress"),
                (1, "In Progress", "Ready to QA"),
            ),
        )

        record = IssueProcessor().process(raw).to_record()

        self.assertEqual(record["ready_to_qa_iterations"], 0)
        self.assertEqual(record["in_qa_iterations"], 1)
        self.assertEqual(record["qa_feedback_pattern"], "inQa")
        self.assertEqual(record["qa_feedback_iterations"], 1)
        self.assertEqual(record["qa_feedback_cycles"][0]["pattern_type"], "inQa")


class TestUseCase07MalformedIssueInBatch(unittest.TestCase):
    """
    Use Case 7: One issue cannot be processed
    - batch keeps going and returns a partial record for it
    """

    def test_partial_record_for_broken_issue(self):
        good = RawIssue(id="GOOD-1", history=create_history((0, "Todo", "In Progress")))
        broken = RawIssue(id="BAD-1", number=9, title="Broken", history=[object(), object()])
        after = RawIssue(id="GOOD-2", assignee="Bob")

        with self.assertLogs(level="ERROR"):
            results = process_issues([good, broken, after])

        self.assertEqual([r.issue_id for r in results], ["GOOD-1", "BAD-1", "GOOD-2"])
        partial = results[1].to_record()
        self.assertEqual(partial["issue_number"], 9)
        self.assertEqual(partial["issue_title"], "Broken")
        self.assertEqual(partial["assignee"], "Unassigned")
        self.assertIsNotNone(partial["processing_error"])
        self.assertIsNone(partial["in_progress_to_in_review_days"])
        self.assertEqual(partial["qa_feedback_iterations"], 0)
        self.assertIsNone(results[0].processing_error)
        self.assertEqual(results[2].assignee, "Bob")

    def test_malformed_timestamp_only_affects_its_duration(self):
        history = create_history(
            (1, "In Progress", "In Review"),
            (3, "In Review", "Done"),
        )
        history.append(HistoryEvent(timestamp="not-a-date", from_state="Todo", to_state="In Progress"))

        record = IssueProcessor().process(RawIssue(id="ISS-7", history=history)).to_record()

        self.assertIsNone(record["backlog_to_in_progress_timestamp"])
        self.assertIsNone(record["in_progress_to_in_review_days"])
        self.assertEqual(record["in_review_to_done_days"], 2.0)

    def test_malformed_duplicate_does_not_hide_valid_transition(self):
        history = create_history(
            (0, "Todo", "In Progress"),
            (2, "In Progress", "In Review"),
        )
        history.append(HistoryEvent(timestamp="bogus", from_state="Todo", to_state="In Progress"))

        record = IssueProcessor().process(RawIssue(id="ISS-7b", history=history)).to_record()

        self.assertEqual(record["backlog_to_in_progress_timestamp"], days_to_iso(0))
        self.assertEqual(record["in_progress_to_in_review_days"], 2.0)

    def test_one_shot_label_iterable(self):
        raw = RawIssue(
            id="ISS-7c",
            labels=(label for label in QA_LABELS),
            history=create_history(
                (0, "Ready to QA", "In Progress"),
                (1, "In Progress", "Ready to QA"),
            ),
        )

        issue = IssueProcessor().process(raw)

        self.assertEqual(issue.labels, QA_LABELS)
        self.assertEqual(issue.qa_feedback_iterations, 1)


if __name__ == '__main__':
    unittest.main()
