"""Change notifier: watches files in source repositories and opens pull
requests in target repositories when they change.

Main Components:
- CommitScanner: lists commits that touched a watched file after a watermark
- Publisher: branch -> notification file -> pull request workflow
- Scheduler: periodic and manual cycles over all configured pairs
"""

from .exceptions import NotifierError, PublishStepError, RemoteQueryError
from .models import (
    CommitRecord,
    CycleReport,
    PairOutcome,
    PairResult,
    PublishResult,
    PublishStep,
    SchedulerState,
)
from .publisher import Publisher, compose_body
from .scanner import CommitScanner
from .scheduler import Scheduler

__all__ = [
    "CommitRecord",
    "CommitScanner",
    "CycleReport",
    "NotifierError",
    "PairOutcome",
    "PairResult",
    "PublishResult",
    "PublishStep",
    "PublishStepError",
    "Publisher",
    "RemoteQueryError",
    "Scheduler",
    "SchedulerState",
    "compose_body",
]
