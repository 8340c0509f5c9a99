import uuid

from django.utils.deprecation import MiddlewareMixin

from config.observability import clear_request_context, set_request_context


class RequestIDMiddleware(MiddlewareMixin):
    """Attach a request_id to each request/response cycle and bind logging context."""

    def process_request(self, request):
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())
        request.request_id = request_id

        # DRF authenticates later, inside the view; the authentication
        # class binds the actor once the token has been validated.
        set_request_context(
            request_id=request_id,
            path=request.path,
            method=request.method,
        )

    def process_response(self, request, response):
        request_id = getattr(request, "request_id", None)
        if request_id:
            response["X-Request-ID"] = request_id

        clear_request_context()

        return response
