"""
Tests for RequestContextMiddleware.
"""

from django.http import HttpRequest, HttpResponse
from structlog.contextvars import get_contextvars

from apps.core.middleware import REQUEST_ID_HEADER, RequestContextMiddleware


def make_request(path: str = "/api/v1/health", request_id: str | None = None) -> HttpRequest:
    request = HttpRequest()
    request.path = path
    request.method = "GET"
    request.META = {}
    if request_id:
        request.META["HTTP_X_REQUEST_ID"] = request_id
    return request


class TestRequestContextMiddleware:
    """Tests for per-request logging context."""

    def test_binds_context_during_request(self) -> None:
        seen = {}

        def get_response(request):
            seen.update(get_contextvars())
            return HttpResponse()

        RequestContextMiddleware(get_response)(make_request(request_id="req-1"))

        assert seen["trace_id"] == "req-1"
        assert seen["http.method"] == "GET"
        assert seen["http.url_details.path"] == "/api/v1/health"

    def test_echoes_request_id(self) -> None:
        middleware = RequestContextMiddleware(lambda request: HttpResponse())

        response = middleware(make_request(request_id="req-2"))

        assert response[REQUEST_ID_HEADER] == "req-2"

    def test_generates_request_id_when_missing(self) -> None:
        middleware = RequestContextMiddleware(lambda request: HttpResponse())

        response = middleware(make_request())

        assert len(response[REQUEST_ID_HEADER]) == 36

    def test_clears_context_after_request(self) -> None:
        middleware = RequestContextMiddleware(lambda request: HttpResponse())

        middleware(make_request(request_id="req-3"))

        assert "trace_id" not in get_contextvars()
