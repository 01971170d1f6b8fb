"""
=============================================================================
PIPELINE ENGINE
=============================================================================

    outcome.py        CONTINUE / RESPOND / fail(error)
    stage.py          Stage base class, FunctionStage, @stage
    error_router.py   ErrorRouter, DefaultErrorRouter, @error_router
    cancellation.py   CancellationToken (cancel + deadline)
    pipeline.py       Pipeline: immutable stages, run()
    registry.py       PipelineRegistry: (method, path) → Pipeline

=============================================================================
"""

from .outcome import CONTINUE, RESPOND, OutcomeKind, StageOutcome, fail
from .stage import FunctionStage, Stage, as_stage, stage
from .error_router import (
    DefaultErrorRouter,
    ErrorRouter,
    FunctionErrorRouter,
    RouterState,
    as_error_router,
    error_router,
)
from .cancellation import CancellationToken
from .pipeline import Pipeline
from .registry import PipelineId, PipelineRegistry, normalize_path

__all__ = [
    "CONTINUE",
    "RESPOND",
    "OutcomeKind",
    "StageOutcome",
    "fail",
    "Stage",
    "FunctionStage",
    "stage",
    "as_stage",
    "ErrorRouter",
    "DefaultErrorRouter",
    "FunctionErrorRouter",
    "RouterState",
    "error_router",
    "as_error_router",
    "CancellationToken",
    "Pipeline",
    "PipelineId",
    "PipelineRegistry",
    "normalize_path",
]
