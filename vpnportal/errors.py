# vpnportal/errors.py
"""
Ledger error taxonomy.

Every error carries the HTTP status it maps to so views can hand it straight
to the app-level error handler. Out-of-order lifecycle calls are not errors:
the Commission transitions return False instead.
"""


class LedgerError(Exception):
    status_code = 500
    code = "ledger_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code.replace("_", " "))
        self.message = message or self.code.replace("_", " ")

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class Unauthorized(LedgerError):
    status_code = 401
    code = "unauthorized"


class DuplicateWebhook(LedgerError):
    status_code = 409
    code = "duplicate_webhook"


class ValidationError(LedgerError):
    status_code = 422
    code = "validation_error"


class ProcessorError(LedgerError):
    status_code = 502
    code = "processor_error"
