"""
=============================================================================
STAGES
=============================================================================

A stage is one step of request processing:

    (request, response, state) → StageOutcome

=============================================================================
THE STAGE CONTRACT
=============================================================================

        class CheckAuthHeader(Stage):
            def __call__(self, request, response, state):
                # Read the (immutable) request
                token = request.get_header("auth")

                # Short-circuit into the error router
                if not token:
                    return fail(Unauthorized())

                # Hand data to later stages through the store,
                # never by stashing it on the request
                state.set(Scope.REQUEST, "token", token)

                # Let the next stage run
                return CONTINUE

A stage keeps no per-request state of its own. Anything that must
outlive the call goes through the State Store.

=============================================================================
TERMINATORS
=============================================================================

Every pipeline must be able to finish successfully, so at least one of
its stages must be marked as a terminator: a stage that may return
RESPOND. The registry checks this when a route is registered.

    @stage(terminator=True)
    def respond_greeting(request, response, state):
        response.text(f"Hello, {state.get('name')}")
        return RESPOND

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .outcome import StageOutcome
from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..state.store import ScopedState


# StageFunc is the signature plain functions must follow to become stages
StageFunc = Callable[[RequestDescriptor, ResponseDescriptor, ScopedState], StageOutcome]


class Stage(ABC):
    """
    Abstract base class for pipeline stages.

    Subclasses implement __call__. Set the class attribute ``terminator``
    to True for stages that may return RESPOND.
    """

    terminator: bool = False

    @abstractmethod
    def __call__(
        self,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        """
        Process the request.

        Args:
            request: The incoming request (read-only)
            response: The response being built
            state: This run's view of the State Store

        Returns:
            CONTINUE, RESPOND or fail(error). A stage that calls
            response.send() must return RESPOND; CONTINUE after a send is
            a StageContractError.
        """

    @property
    def name(self) -> str:
        """Name used in logs and diagnostics."""
        return self.__class__.__name__

    def __repr__(self) -> str:
        marker = " terminator" if self.terminator else ""
        return f"<Stage {self.name}{marker}>"


class FunctionStage(Stage):
    """
    Wraps a plain function as a stage.

        def load_name(request, response, state):
            ...
            return CONTINUE

        FunctionStage(load_name)
        FunctionStage(respond_greeting, terminator=True)
    """

    def __init__(
        self,
        func: StageFunc,
        name: Optional[str] = None,
        terminator: bool = False,
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)
        self.terminator = terminator

    def __call__(
        self,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        return self._func(request, response, state)

    @property
    def name(self) -> str:
        return self._name


def stage(
    func: Optional[StageFunc] = None,
    *,
    name: Optional[str] = None,
    terminator: bool = False,
):
    """
    Decorator that turns a function into a FunctionStage.

    Works bare or with options:

        @stage
        def check_auth_header(request, response, state): ...

        @stage(terminator=True)
        def respond_greeting(request, response, state): ...
    """
    def decorator(f: StageFunc) -> FunctionStage:
        return FunctionStage(f, name=name, terminator=terminator)

    if func is not None:
        return decorator(func)
    return decorator


def as_stage(candidate) -> Stage:
    """Accept a Stage or a bare callable and return a Stage."""
    if isinstance(candidate, Stage):
        return candidate
    if callable(candidate):
        return FunctionStage(candidate)
    raise TypeError(f"Not a stage: {candidate!r}")
