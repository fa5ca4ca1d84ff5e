from typing import Callable

from fastapi import HTTPException, Request, Response
from fastapi.routing import APIRoute

BODY_TOO_LARGE = "Request body too large"


class LimitedBodyRequest(Request):
    """
    Request whose body is read with a running size check, so a chunked
    body without Content-Length is cut off as soon as it passes the cap.
    """

    def __init__(self, scope, receive, max_body_size: int) -> None:
        super().__init__(scope, receive)
        self.max_body_size = max_body_size

    async def body(self) -> bytes:
        if not hasattr(self, "_body"):
            declared = self.headers.get("content-length")
            if declared:
                if not declared.isdigit():
                    raise HTTPException(status_code=400, detail="Invalid Content-Length header")
                if int(declared) > self.max_body_size:
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE)

            chunks = []
            received = 0
            async for chunk in self.stream():
                received += len(chunk)
                if received > self.max_body_size:
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE)
                chunks.append(chunk)
            self._body = b"".join(chunks)
        return self._body


class LimitedBodyRoute(APIRoute):
    """Route class applying the MAX_JSON_BODY_SIZE setting to request bodies."""

    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()

        async def custom_route_handler(request: Request) -> Response:
            limit = request.app.state.settings.MAX_JSON_BODY_SIZE
            request = LimitedBodyRequest(request.scope, request.receive, limit)
            return await original_route_handler(request)

        return custom_route_handler
