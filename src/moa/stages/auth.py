"""
Header-based authentication stage.

Checks a single request header and either fails the run with
Unauthorized or records who the caller is at request scope:

    dispatcher.get("/admin",
                   HeaderAuthStage("X-API-Key", validator=keys.get),
                   show_dashboard)

    # later stages
    principal = state.get("principal")
"""

from typing import Any, Callable, Optional

from ..errors import Unauthorized
from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..pipeline.outcome import CONTINUE, StageOutcome, fail
from ..pipeline.stage import Stage
from ..state.store import Scope, ScopedState


# Returns the principal for an accepted credential, None (or False) to reject
Validator = Callable[[str], Any]


class HeaderAuthStage(Stage):
    """
    Fails with Unauthorized when the header is missing or rejected.

    Args:
        header: Header to read (case-insensitive)
        validator: Maps the header value to a principal. Without one, any
                   non-empty value is accepted and is itself the principal.
        state_key: Request-scope key the principal is stored under
    """

    def __init__(
        self,
        header: str = "Authorization",
        validator: Optional[Validator] = None,
        state_key: str = "principal",
    ):
        self.header = header
        self.validator = validator
        self.state_key = state_key

    def __call__(
        self,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        credential = request.get_header(self.header).strip()
        if not credential:
            return fail(Unauthorized(f"Missing {self.header} header"))

        principal = credential
        if self.validator is not None:
            principal = self.validator(credential)
            if principal is None or principal is False:
                return fail(Unauthorized(f"Invalid {self.header} header"))

        state.set(Scope.REQUEST, self.state_key, principal)
        return CONTINUE
