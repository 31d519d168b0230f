from typing import Any

from pydantic import ValidationError


class ResinRequestBaseError(Exception):
    """Base exception for all resin-request errors."""

    pass


class RequestError(ResinRequestBaseError):
    """
    Raised when the remote service answers with an error status code.

    The message is extracted from the response body when possible.
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return f"Request error: {self.message}"


class ExpiredTokenError(ResinRequestBaseError):
    """Raised when the session token was rejected while refreshing it."""

    def __init__(self, token: str | None):
        super().__init__("The token expired")
        self.token = token


class OptionError(ResinRequestBaseError):
    """Base exception for request options rejected before any network activity."""

    pass


class UnsupportedOptionError(OptionError):
    """Raised when a request option has no supported equivalent."""

    def __init__(self, param: str, value: Any):
        super().__init__(f"The {param} param is not supported. Value: {value}")
        self.param = param
        self.value = value


class InvalidOptionError(OptionError):
    """Raised when a request option has a value that is never allowed."""

    pass


class TransportError(ResinRequestBaseError):
    """Raised when the network exchange could not be completed."""

    pass


class RequestTimeoutError(TransportError, TimeoutError):
    """Raised when a request exceeds its configured timeout."""

    pass


class UnsupportedCapabilityError(ResinRequestBaseError, NotImplementedError):
    """Raised when an operation is not available with the configured transport."""

    def __init__(self, capability: str):
        super().__init__(f"The {capability} method is not implemented for this transport")
        self.capability = capability


def stringify_pydantic_error(validation_error: ValidationError) -> str:
    return "\n".join(f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in validation_error.errors())
