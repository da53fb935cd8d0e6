"""Error taxonomy.

Every error the core raises on purpose derives from `SupportDeskError` and knows its HTTP
status and JSON body. The API layer renders them with a single exception handler.
"""

from __future__ import annotations

from typing import Any, Dict, List


class SupportDeskError(Exception):
    status_code: int = 500
    default_detail: Any = "internal_error"

    def __init__(self, detail: Any = None):
        self.detail = self.default_detail if detail is None else detail
        super().__init__(str(self.detail))

    def body(self) -> Any:
        return self.detail


class ValidationError(SupportDeskError):
    """Malformed or missing input, reported per field."""

    status_code = 422

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = list(errors)
        super().__init__(self.errors)

    def body(self) -> Any:
        return {"errors": self.errors}


class InvalidCredentials(SupportDeskError):
    status_code = 401
    default_detail = ["user doesn't exist"]


class NotAuthorized(SupportDeskError):
    status_code = 401
    default_detail = "Not Authorized"


class DuplicateKey(SupportDeskError):
    status_code = 400

    def __init__(self, email: str):
        self.email = email
        super().__init__({"errors": [{"param": "email", "msg": "Email already registered"}]})


class NotFound(SupportDeskError):
    status_code = 404
    default_detail = "Not Found"


class UpstreamError(SupportDeskError):
    """The billing provider failed."""

    status_code = 500
    default_detail = "billing_error"

    def body(self) -> Any:
        return self.default_detail


class StoreError(SupportDeskError):
    """The database failed."""

    status_code = 500
    default_detail = "store_error"

    def body(self) -> Any:
        # Never leak driver messages to clients.
        return self.default_detail


class SessionTeardownError(SupportDeskError):
    status_code = 500
    default_detail = "error logging out"
