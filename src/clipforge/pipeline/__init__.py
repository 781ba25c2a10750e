"""Pipeline stages and the run coordinator.

Each stage reads jobs in one status, processes a bounded batch and writes
results back through the job store:

  crawl      PENDING      -> CRAWLED
  transcribe CRAWLED      -> TRANSCRIBED
  analyze    TRANSCRIBED  -> ANALYZED
  edit       ANALYZED     -> EDITED
  review     EDITED       -> PENDING_APPROVAL | REJECTED
"""

from clipforge.pipeline.base import OutcomeKind, Stage, StageOutcome, call_with_timeout
from clipforge.pipeline.runner import (
    STAGE_ORDER,
    ExecutionContext,
    PipelineRunner,
    StageLock,
    default_stages,
)

__all__ = [
    "STAGE_ORDER",
    "ExecutionContext",
    "OutcomeKind",
    "PipelineRunner",
    "Stage",
    "StageLock",
    "StageOutcome",
    "call_with_timeout",
    "default_stages",
]
