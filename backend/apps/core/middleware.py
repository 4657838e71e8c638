"""
Core middleware.
"""

import uuid
from collections.abc import Callable

from django.http import HttpRequest, HttpResponse

from apps.core.logging import bind_contextvars, clear_contextvars

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware:
    """
    Binds per-request logging context.

    Every log line emitted while handling the request carries the trace ID,
    method and path. The trace ID is taken from X-Request-ID when the load
    balancer supplies one and echoed back on the response.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        trace_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        clear_contextvars()
        bind_contextvars(
            trace_id=trace_id,
            **{
                "http.method": request.method,
                "http.url_details.path": request.path,
            },
        )
        try:
            response = self.get_response(request)
        finally:
            clear_contextvars()

        response[REQUEST_ID_HEADER] = trace_id
        return response
