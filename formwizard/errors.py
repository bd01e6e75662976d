"""
Exception types for the form engine.

Field-level validation problems are never raised; they are returned as an
error map by the validation engine. The exceptions here cover the cases
that make a request or a whole session unusable.
"""


class FormWizardError(Exception):
    """Base class for all form engine errors."""


class AcquisitionError(FormWizardError):
    """Schema or identity retrieval failed or returned an unusable body."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SchemaError(AcquisitionError):
    """The provider returned a form description with an invalid shape."""


class SessionStateError(FormWizardError):
    """The session is not in a state that allows the requested operation."""


class NavigationError(FormWizardError):
    """An illegal section transition was requested."""


class UnsupportedFieldError(FormWizardError):
    """A value was bound to a field whose type cannot be rendered."""
