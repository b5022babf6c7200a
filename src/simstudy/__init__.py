"""
simstudy - Replicated simulation studies.

Generate data, fit, checkpoint, repeat until enough runs succeed.
"""

from simstudy.executor import ReplicateExecutor
from simstudy.models.study import RunConfig
from simstudy.outcome import Failure, ResultRecord, Success
from simstudy.study import RunCounters, StudyResult, StudyRunner

__version__ = "0.1.0"
__all__ = [
    "Failure",
    "ReplicateExecutor",
    "ResultRecord",
    "RunConfig",
    "RunCounters",
    "StudyResult",
    "StudyRunner",
    "Success",
    "__version__",
]
