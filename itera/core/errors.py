# Error taxonomy shared by the proxy service and the HTTP layer.
# Services raise these; itera.main renders them with the ErrorResponse format.

from typing import Optional

from fastapi import status


class ProxyError(Exception):
    """Base class for every failure the proxy reports to its caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "PROXY_ERROR"
    message: str = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidInput(ProxyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_INPUT"
    message = "The request is missing required data or contains invalid values."


class NotFound(ProxyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "No matching result was found."


class UpstreamError(ProxyError):
    """The mapping provider answered with an error status or an unusable body."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_ERROR"
    message = "The mapping provider returned an error."

    def __init__(self, endpoint: str, upstream_status: Optional[int] = None, message: Optional[str] = None):
        self.endpoint = endpoint
        self.upstream_status = upstream_status
        super().__init__(message)


class UpstreamTimeout(ProxyError):
    """The mapping provider did not answer before the deadline.

    Reported to clients as a generic server error; only logs tell it apart.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_SERVER_ERROR"
    message = "An unexpected error occurred while contacting the mapping provider."

    def __init__(self, endpoint: str, timeout: float):
        self.endpoint = endpoint
        self.timeout = timeout
        super().__init__()


class RateLimited(ProxyError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests, please try again later."

    def __init__(self, limit: int, retry_after: int):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__()
