from ..http.request import RequestDescriptor
from ..http.response import ResponseDescriptor
from ..pipeline.outcome import CONTINUE, StageOutcome
from ..pipeline.stage import Stage
from ..state.store import Scope, ScopedState


class RequestIdStage(Stage):
    """
    Exposes the request id to later stages and to the client.

    A client-supplied header value wins over the generated id, so a
    caller can correlate its own logs with ours.
    """

    def __init__(self, header: str = "X-Request-ID", state_key: str = "request_id"):
        self.header = header
        self.state_key = state_key

    def __call__(
        self,
        request: RequestDescriptor,
        response: ResponseDescriptor,
        state: ScopedState,
    ) -> StageOutcome:
        request_id = request.get_header(self.header) or request.request_id
        state.set(Scope.REQUEST, self.state_key, request_id)
        response.set_header(self.header, request_id)
        return CONTINUE
