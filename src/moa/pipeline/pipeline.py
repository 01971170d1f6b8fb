"""
=============================================================================
PIPELINE
=============================================================================

An ordered, immutable sequence of stages plus one error router.

=============================================================================
EXECUTION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   PIPELINE RUN - GET /greet                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌────────────────┐   ┌──────────┐   ┌─────────────────┐           │
    │   │checkAuthHeader │──►│ loadName │──►│ respondGreeting │──► 200    │
    │   └───────┬────────┘   └──────────┘   └─────────────────┘           │
    │           │ Fail(Unauthorized)                                       │
    │           ▼                                                          │
    │   ┌────────────────┐                                                 │
    │   │sendUnauthorized│──► 401                                         │
    │   └────────────────┘   (loadName, respondGreeting never run)        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Unlike an onion of wrapped handlers, a run is a flat loop:

    for stage in stages:
        outcome = stage(request, response, state)
        CONTINUE → next iteration
        RESPOND  → seal response, return it
        Fail(e)  → error router, exactly once

so there is no "after" phase and no way for a stage to run twice.

=============================================================================
WHAT COUNTS AS A FAILURE
=============================================================================

    stage returns fail(e)              → Fail(e)
    stage raises e                     → Fail(e)
    stage returns something else       → Fail(StageContractError)
    stage sends, then returns CONTINUE → Fail(StageContractError)
    last stage returns CONTINUE        → Fail(UnterminatedPipeline)

Every one of these goes through the error router, so run() either
returns a response or raises ErrorRouterFailure (or RequestCancelled when
the caller gave up). Nothing else escapes.

A sent response is sealed, so after the send-then-CONTINUE case the
error router cannot write either. That run ends in ErrorRouterFailure
with the StageContractError as its original_error.

=============================================================================
"""

from typing import Iterable, Optional, Tuple
import logging

from .cancellation import CancellationToken
from .error_router import ErrorRouter, RouterState, as_error_router
from .outcome import StageOutcome, fail
from .stage import Stage, as_stage
from ..errors import (
    EngineContractError,
    ErrorRouterFailure,
    RequestCancelled,
    StageContractError,
    UnterminatedPipeline,
)
from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..state.store import ScopedState, StateStore


logger = logging.getLogger(__name__)


class _Run:
    """Everything that belongs to one execution of a pipeline."""

    def __init__(
        self,
        request: RequestDescriptor,
        state: ScopedState,
        cancel: Optional[CancellationToken],
    ):
        self.request = request
        self.response = ResponseDescriptor()
        self.state = state
        self.cancel = cancel
        self.router_state = RouterState.IDLE

    def check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.cancelled:
            raise RequestCancelled(self.cancel.reason)

    def enter_error_router(self) -> None:
        if self.router_state is not RouterState.IDLE:
            raise EngineContractError("Error router entered twice in one run")
        self.router_state = RouterState.HANDLING


class Pipeline:
    """
    Stages bound to one route, plus the error router for that route.

    Built once at registration and never changed. ``stages`` is a tuple;
    there is no add() or insert().

    Args:
        stages: Stages (or plain stage functions) in execution order
        error_router: ErrorRouter (or plain function) for Fail outcomes
        name: Label for logs, usually "METHOD /path"
    """

    def __init__(
        self,
        stages: Iterable,
        error_router,
        name: str = "pipeline",
    ):
        self._stages: Tuple[Stage, ...] = tuple(as_stage(s) for s in stages)
        self._error_router: ErrorRouter = as_error_router(error_router)
        self.name = name

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def error_router(self) -> ErrorRouter:
        return self._error_router

    @property
    def terminators(self) -> Tuple[Stage, ...]:
        return tuple(s for s in self._stages if s.terminator)

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self):
        return iter(self._stages)

    def __repr__(self) -> str:
        names = ", ".join(s.name for s in self._stages)
        return f"<Pipeline {self.name} [{names}] errors→{self._error_router.name}>"

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def run(
        self,
        request: RequestDescriptor,
        store: StateStore,
        cancel: Optional[CancellationToken] = None,
    ) -> ResponseDescriptor:
        """
        Execute the pipeline for one request.

        Args:
            request: The request to process
            store: State store; a fresh request scope is created for this run
            cancel: Optional token; once it fires no further stage starts

        Returns:
            The sealed response

        Raises:
            ErrorRouterFailure: The error router could not produce a response
            RequestCancelled: The token fired before the run finished
        """
        run = _Run(request, store.scoped(request.session_id), cancel)

        # Seal the response the instant the caller gives up, so a stage that
        # is still running gets AlreadyResponded on its next write.
        if cancel is not None:
            cancel.on_cancel(run.response.seal)

        try:
            outcome = self._run_stages(run)
            if outcome.is_respond:
                run.response.seal()
                return run.response
            return self._route_error(run, outcome.error)
        finally:
            run.state.release()
            if cancel is not None:
                cancel.remove_callback(run.response.seal)

    def _run_stages(self, run: _Run) -> StageOutcome:
        """Run stages in order until one responds or fails."""
        rid = run.request.request_id

        for stage in self._stages:
            run.check_cancelled()

            try:
                outcome = stage(run.request, run.response, run.state)
            except Exception as e:
                run.check_cancelled()
                logger.debug(f"[{rid}] {self.name}: {stage.name} raised {type(e).__name__}")
                return fail(e)

            run.check_cancelled()

            if not isinstance(outcome, StageOutcome):
                return fail(StageContractError(
                    f"Stage {stage.name} returned {outcome!r}, not a StageOutcome"
                ))

            logger.debug(f"[{rid}] {self.name}: {stage.name} -> {outcome!r}")

            if not outcome.is_continue:
                return outcome

            if run.response.sent:
                return fail(StageContractError(
                    f"Stage {stage.name} sent the response but returned CONTINUE; "
                    "a stage that sends must return RESPOND"
                ))

        return fail(UnterminatedPipeline(self.name))

    def _route_error(self, run: _Run, error: BaseException) -> ResponseDescriptor:
        """Hand a failure to the error router. Called at most once per run."""
        run.check_cancelled()
        run.enter_error_router()
        router = self._error_router

        try:
            result = router(error, run.request, run.response, run.state)
        except Exception as e:
            run.check_cancelled()
            raise ErrorRouterFailure(
                f"Error router {router.name} raised {type(e).__name__}: {e}",
                original_error=error,
            ) from e

        if not isinstance(result, StageOutcome) or not result.is_respond:
            raise ErrorRouterFailure(
                f"Error router {router.name} returned {result!r} instead of RESPOND",
                original_error=error,
            )

        run.response.seal()
        return run.response
