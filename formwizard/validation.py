"""
Section validation for runtime-supplied forms.

Validation Rules Documentation:
===============================

Each field of the section is checked in field order against the current
answers. Every message below is replaced by the field's custom
``validation.message`` when the schema supplies one.

1. UNSUPPORTED TYPES
   - Skipped entirely; they cannot be rendered so they cannot be answered

2. REQUIRED
   - Absent, None or '' -> "This field is required"
   - Nothing else is checked for that field

3. OPTIONAL AND EMPTY
   - No error, nothing else is checked

4. STRING VALUES (all types)
   - minLength -> "Minimum length is {n} characters"
   - maxLength -> "Maximum length is {n} characters"

5. PER-TYPE FORMAT (string values)
   - email: local@domain.tld -> "Please enter a valid email address"
   - tel: optional leading +, digits, spaces, hyphens, parentheses
     -> "Please enter a valid phone number"

6. NON-STRING VALUES
   - Checkbox booleans only take part in the required check

A field carries at most one message. Later checks overwrite earlier ones
for the same field, so a value that is both too short and malformed reports
the format problem.

Validation never raises for bad input and never mutates the answers.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

from formwizard.schema import FieldType, FormField, FormSection

logger = logging.getLogger(__name__)


# Default messages
REQUIRED_MESSAGE = 'This field is required'
MIN_LENGTH_MESSAGE = 'Minimum length is {limit} characters'
MAX_LENGTH_MESSAGE = 'Maximum length is {limit} characters'
EMAIL_MESSAGE = 'Please enter a valid email address'
PHONE_MESSAGE = 'Please enter a valid phone number'

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[0-9\s\-()]+$')


@dataclass
class ValidationError:
    """A single field-level problem."""
    field: str
    message: str
    code: str


@dataclass
class SectionValidationResult:
    """Outcome of validating one section: at most one error per field."""
    section_title: str = ''
    issues: Dict[str, ValidationError] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> Dict[str, str]:
        """The error map: fieldId -> message."""
        return {field_id: issue.message for field_id, issue in self.issues.items()}

    def add_error(self, field_id: str, message: str, code: str = 'invalid'):
        """Record an error, replacing any earlier one for the same field."""
        self.issues[field_id] = ValidationError(field_id, message, code)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            'ok': self.is_valid,
            'errors': self.errors,
            'codes': {field_id: issue.code for field_id, issue in self.issues.items()},
        }


def is_empty(value: Any) -> bool:
    """True for answers that count as not given."""
    return value is None or value == ''


def _message(form_field: FormField, default: str) -> str:
    return form_field.custom_message or default


def _check_lengths(form_field: FormField, value: str, result: SectionValidationResult):
    if form_field.min_length and len(value) < form_field.min_length:
        result.add_error(
            form_field.field_id,
            _message(form_field, MIN_LENGTH_MESSAGE.format(limit=form_field.min_length)),
            'min_length'
        )

    if form_field.max_length and len(value) > form_field.max_length:
        result.add_error(
            form_field.field_id,
            _message(form_field, MAX_LENGTH_MESSAGE.format(limit=form_field.max_length)),
            'max_length'
        )


def _validate_plain(form_field: FormField, value: str, result: SectionValidationResult):
    """Types whose only string checks are the length bounds."""
    _check_lengths(form_field, value, result)


def _validate_email(form_field: FormField, value: str, result: SectionValidationResult):
    _check_lengths(form_field, value, result)
    if not EMAIL_PATTERN.fullmatch(value):
        result.add_error(form_field.field_id, _message(form_field, EMAIL_MESSAGE), 'format')


def _validate_tel(form_field: FormField, value: str, result: SectionValidationResult):
    _check_lengths(form_field, value, result)
    if not PHONE_PATTERN.fullmatch(value):
        result.add_error(form_field.field_id, _message(form_field, PHONE_MESSAGE), 'format')


FieldValidator = Callable[[FormField, str, SectionValidationResult], None]

FIELD_VALIDATORS: Dict[FieldType, FieldValidator] = {
    FieldType.TEXT: _validate_plain,
    FieldType.EMAIL: _validate_email,
    FieldType.TEL: _validate_tel,
    FieldType.TEXTAREA: _validate_plain,
    FieldType.DATE: _validate_plain,
    FieldType.DROPDOWN: _validate_plain,
    FieldType.RADIO: _validate_plain,
    FieldType.CHECKBOX: _validate_plain,
}


def validate_field(form_field: FormField, value: Any, result: SectionValidationResult) -> bool:
    """
    Validate a single field value, recording at most one error in ``result``.

    Returns:
        True if the field produced no error
    """
    field_type = form_field.field_type
    if field_type is None:
        logger.debug('Skipping unsupported field %s (type %r)', form_field.field_id, form_field.raw_type)
        return True

    if is_empty(value):
        if form_field.required:
            result.add_error(form_field.field_id, _message(form_field, REQUIRED_MESSAGE), 'required')
            return False
        return True

    if isinstance(value, str):
        FIELD_VALIDATORS[field_type](form_field, value, result)

    return form_field.field_id not in result.issues


def validate_section(section: FormSection, answers: Mapping[str, Any]) -> SectionValidationResult:
    """
    Validate every field of a section against the current answers.

    Args:
        section: The section being shown
        answers: Anything with ``get(field_id)``, usually an AnswerStore

    Returns:
        SectionValidationResult whose ``errors`` is the new error map
    """
    result = SectionValidationResult(section_title=section.title)

    for form_field in section.fields:
        validate_field(form_field, answers.get(form_field.field_id), result)

    if not result.is_valid:
        logger.debug('Section %r failed validation on %s', section.title, sorted(result.issues))

    return result
