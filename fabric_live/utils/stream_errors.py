"""Error codes and exceptions for live stream operations.

Only infrastructure-level failures are raised. Conflicts, missing
preconditions and poll timeouts are reported through the ``errcode`` and
``error`` fields of the operation result.
"""

import inspect
from enum import Enum
from uuid import uuid4


class StreamErrorCode(str, Enum):
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONFIGURATION = "E_CONFIGURATION"
    E_CONFLICT = "E_CONFLICT"
    E_PRECONDITION = "E_PRECONDITION"
    E_TERMINATION_TIMEOUT = "E_TERMINATION_TIMEOUT"
    E_REMOTE_UNAVAILABLE = "E_REMOTE_UNAVAILABLE"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    def __str__(self) -> str:
        return self.value


class StreamError(Exception):
    """Base error carrying an error code and the call site that raised it."""

    default_errcode: StreamErrorCode = StreamErrorCode.E_INVALID_REQUEST

    def __init__(
        self,
        errmesg: str,
        *,
        errcode: StreamErrorCode | None = None,
    ):
        super().__init__(errmesg)
        self.errcode = errcode or self.default_errcode
        self.errmesg = errmesg
        self.erresid = uuid4().hex[:10]

        # First frame outside this module, so subclass constructors are skipped
        self.caller_info = "unknown"
        for caller_frame in inspect.stack()[1:]:
            module = inspect.getmodule(caller_frame.frame)
            module_name = (
                module.__name__
                if module and getattr(module, "__name__", None)
                else caller_frame.filename
            )
            if module_name != __name__:
                self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"
                break

    def __str__(self) -> str:
        return f"{self.errcode} {self.errmesg}"


class NotFoundError(StreamError):
    """Stream name is neither a content id nor an entry of the stream table."""

    default_errcode = StreamErrorCode.E_NOT_FOUND


class ConfigurationError(StreamError):
    """Object metadata lacks a usable fabric configuration."""

    default_errcode = StreamErrorCode.E_CONFIGURATION


class RemoteUnavailableError(StreamError):
    """A required fabric call failed (transport error or non-2xx response)."""

    default_errcode = StreamErrorCode.E_REMOTE_UNAVAILABLE

    def __init__(self, errmesg: str, *, status_code: int | None = None):
        super().__init__(errmesg)
        self.status_code = status_code
