"""Exception hierarchy shared by the FormFlow services and API.

Service-level errors carry the HTTP status the API should answer with, so
route handlers translate them without re-interpreting the cause.
"""

from __future__ import annotations

FORM_NOT_FOUND = "Form not found"
FORM_EXPIRED = "Form has expired"
FORM_ALREADY_SUBMITTED = "Form has already been submitted"
OFFLINE_MESSAGE = "Offline - saved locally only"


class FormFlowError(Exception):
    """Base class for errors raised by FormFlow services."""

    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class FormNotFoundError(FormFlowError):
    status_code = 404

    def __init__(self, message: str = FORM_NOT_FOUND) -> None:
        super().__init__(message)


class FormExpiredError(FormFlowError):
    status_code = 400

    def __init__(self, message: str = FORM_EXPIRED) -> None:
        super().__init__(message)


class FormAlreadySubmittedError(FormFlowError):
    status_code = 400

    def __init__(self, message: str = FORM_ALREADY_SUBMITTED) -> None:
        super().__init__(message)


class SubmissionValidationError(FormFlowError):
    """Submitted data does not satisfy the template schema."""

    status_code = 422

    def __init__(self, errors: list) -> None:
        detail = ", ".join(f"{e.path}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {detail}")
        self.errors = errors


class TemplateNotFoundError(FormFlowError):
    status_code = 404

    def __init__(self, message: str = "Template not found or inactive") -> None:
        super().__init__(message)


class SchemaError(ValueError):
    """A form schema definition is malformed."""


class OfflineError(ConnectionError):
    """Raised by the auto-save controller when no connectivity is available."""

    def __init__(self, message: str = OFFLINE_MESSAGE) -> None:
        super().__init__(message)


class TerminalSaveError(Exception):
    """A draft save was rejected for a reason retrying cannot fix.

    Raised for not-found, expired and already-submitted answers from the
    draft endpoint.
    """

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
