# synapse/errors.py
from fastapi import Request
from fastapi.responses import JSONResponse

# callable error code -> HTTP status
STATUS_CODES = {
    "invalid-argument": 400,
    "unauthenticated": 401,
    "permission-denied": 403,
    "not-found": 404,
    "resource-exhausted": 429,
    "internal": 500,
}


class CallableError(Exception):
    """
    Error raised by the callable operations (chatWithAI, analyzeDocument).
    Rendered as {"error": {"status": code, "message": message}}.
    """

    def __init__(self, code: str, message: str):
        if code not in STATUS_CODES:
            raise ValueError(f"unknown callable error code {code!r}")
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def http_status(self) -> int:
        return STATUS_CODES[self.code]


def callable_error_handler(request: Request, exc: CallableError):
    return JSONResponse({"error": {"status": exc.code, "message": exc.message}}, status_code=exc.http_status)
