from typing import Any, Optional, Union

from ..http.status_codes import HTTPStatus, resolve_status
from ..pipeline.outcome import RESPOND
from ..pipeline.stage import FunctionStage


def respond_with(
    status: Union[HTTPStatus, int] = HTTPStatus.OK,
    body: Any = "",
    name: Optional[str] = None,
) -> FunctionStage:
    """
    A terminator that always writes the same response.

    str bodies go out as text/plain, bytes as-is, anything else as JSON.

        dispatcher.get("/health", respond_with(200, {"status": "healthy"}))
    """
    status = resolve_status(status)

    def respond(request, response, state):
        response.set_status(status)
        if isinstance(body, str):
            response.text(body)
        elif isinstance(body, bytes):
            response.set_body(body)
        else:
            response.json(body)
        return RESPOND

    return FunctionStage(respond, name=name or f"respond_with({int(status)})", terminator=True)
