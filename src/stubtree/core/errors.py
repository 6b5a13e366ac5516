"""
Exception taxonomy for stubtree.

Every failure is local to one request or operation: none of these should
ever escape the broker's dispatch loop or leave the forest half-updated.
"""


class StubtreeError(Exception):
    """Base class for all stubtree errors."""


class ConfigError(StubtreeError):
    """Configuration file or environment value is invalid."""


class RequestTimeoutError(StubtreeError):
    """
    A broker request received no matching response before its deadline.

    Recoverable: the broker stays healthy and a late response is dropped.
    """

    def __init__(self, endpoint: str, request_id: str, timeout_ms: int):
        self.endpoint = endpoint
        self.request_id = request_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Request {request_id} to '{endpoint}' timed out after {timeout_ms / 1000:g} seconds."
        )


class RemoteHandlerError(StubtreeError):
    """The remote handler raised; its message travels back in the response."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        self.message = message
        super().__init__(f"Handler for '{endpoint}' failed: {message}")


class BrokerClosedError(StubtreeError):
    """The broker was disposed while the request was outstanding."""


class PromptGenerationError(StubtreeError):
    """The prompt endpoint answered with an error payload."""


class SessionStateError(StubtreeError):
    """An operation needs state the session does not have yet."""


class BackendError(StubtreeError):
    """The analysis backend could not be loaded or queried."""
