"""
=============================================================================
STAGE OUTCOMES
=============================================================================

What a stage tells the pipeline to do next.

Express-style middleware signals control flow through a callback:

    function (req, res, next) {
        if (!ok) return next(err);   // error path
        next();                      // continue
        // or: res.send(...) and never call next
    }

Forgetting to call next(), calling it twice, or calling it after sending
are all silent bugs. Here control flow is the return value instead:

    ┌──────────────┬─────────────────────────────────────────────────────┐
    │ CONTINUE     │ run the next stage                                  │
    │ RESPOND      │ stop; the response is final                         │
    │ Fail(error)  │ stop; hand the error to the error router            │
    └──────────────┴─────────────────────────────────────────────────────┘

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeKind(Enum):
    CONTINUE = "continue"
    RESPOND = "respond"
    FAIL = "fail"


@dataclass(frozen=True)
class StageOutcome:
    """
    Tagged result of a stage.

    Use the CONTINUE and RESPOND constants and the fail() factory rather
    than constructing these directly.
    """

    kind: OutcomeKind
    error: Optional[BaseException] = None

    def __post_init__(self):
        if self.kind is OutcomeKind.FAIL and self.error is None:
            raise ValueError("A FAIL outcome must carry an error")
        if self.kind is not OutcomeKind.FAIL and self.error is not None:
            raise ValueError(f"A {self.kind.name} outcome cannot carry an error")

    @property
    def is_continue(self) -> bool:
        return self.kind is OutcomeKind.CONTINUE

    @property
    def is_respond(self) -> bool:
        return self.kind is OutcomeKind.RESPOND

    @property
    def is_fail(self) -> bool:
        return self.kind is OutcomeKind.FAIL

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Fail({self.error!r})"
        return self.kind.name


CONTINUE = StageOutcome(OutcomeKind.CONTINUE)
RESPOND = StageOutcome(OutcomeKind.RESPOND)


def fail(error: BaseException) -> StageOutcome:
    """Build a Fail outcome: ``return fail(Unauthorized())``."""
    return StageOutcome(OutcomeKind.FAIL, error)
