import logging
import os
from dataclasses import dataclass

import pytz
from dotenv import load_dotenv


load_dotenv()


DEFAULT_TODO = "Todo"
DEFAULT_IN_PROGRESS = "In Progress"
DEFAULT_IN_REVIEW = "In Review"
DEFAULT_READY_FOR_QA = "Ready to QA"
DEFAULT_IN_QA = "In QA"
DEFAULT_DONE = "Done"
DEFAULT_QA_FEEDBACK_LABEL = "qa feedback"


@dataclass(frozen=True)
class WorkflowConfig:
    todo: str = DEFAULT_TODO
    in_progress: str = DEFAULT_IN_PROGRESS
    in_review: str = DEFAULT_IN_REVIEW
    ready_for_qa: str = DEFAULT_READY_FOR_QA
    in_qa: str = DEFAULT_IN_QA
    done: str = DEFAULT_DONE
    qa_feedback_label: str = DEFAULT_QA_FEEDBACK_LABEL
    timezone: str = "UTC"
    log_level: str = "WARNING"


def _env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def get_workflow_config() -> WorkflowConfig:
    timezone = _env("FLOW_TIMEZONE", "UTC")
    if timezone not in pytz.all_timezones_set:
        raise ValueError(f"Unknown timezone: {timezone}")
    return WorkflowConfig(
        todo=_env("FLOW_STATE_TODO", DEFAULT_TODO),
        in_progress=_env("FLOW_STATE_IN_PROGRESS", DEFAULT_IN_PROGRESS),
        in_review=_env("FLOW_STATE_IN_REVIEW", DEFAULT_IN_REVIEW),
        ready_for_qa=_env("FLOW_STATE_READY_FOR_QA", DEFAULT_READY_FOR_QA),
        in_qa=_env("FLOW_STATE_IN_QA", DEFAULT_IN_QA),
        done=_env("FLOW_STATE_DONE", DEFAULT_DONE),
        qa_feedback_label=_env("FLOW_QA_FEEDBACK_LABEL", DEFAULT_QA_FEEDBACK_LABEL),
        timezone=timezone,
        log_level=_env("FLOW_LOG_LEVEL", "WARNING").upper(),
    )


def configure_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
