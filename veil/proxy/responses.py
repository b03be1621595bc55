"""
Error Responses

Fixed JSON bodies written for every non-relayed outcome.
"""

from enum import Enum
from typing import Any, Dict

from starlette.responses import JSONResponse


class ErrorKind(Enum):
    """Terminal failure kinds and their (status-code, status, message)."""

    BAD_METHOD = (400, "Invalid Request", "bad request")
    UNAUTHORIZED = (401, "Unauthorized", "access denied")
    NOT_FOUND = (404, "Not Found", "not found")
    REQUEST_TIMEOUT = (408, "Request Timeout", "request timed out")
    INTERNAL_ERROR = (500, "Internal Server Error", "internal server error")

    @property
    def status_code(self) -> int:
        return self.value[0]

    @property
    def status(self) -> str:
        return self.value[1]

    @property
    def message(self) -> str:
        return self.value[2]


def error_body(kind: ErrorKind) -> Dict[str, Any]:
    """Build the JSON document for *kind*; key order is part of the format."""
    return {
        "type": "error",
        "status-code": kind.status_code,
        "status": kind.status,
        "result": {"message": kind.message},
    }


def error_response(kind: ErrorKind, mirror_status: bool = True) -> JSONResponse:
    """
    Render *kind* as a response.

    The status line carries the body's code when *mirror_status* is set,
    otherwise 200 as in the plain relay wrapper.
    """
    return JSONResponse(
        status_code=kind.status_code if mirror_status else 200,
        content=error_body(kind),
    )
