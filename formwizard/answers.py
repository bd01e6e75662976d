"""
Answer store for one form session.

Answers are kept flat, keyed by the form-wide field id, independent of
which section is showing. The store also holds the error map of the
displayed section so that editing a field can drop its error straight
away, before the next validation pass.
"""

from typing import Any, Dict, Iterator, Optional, Union

AnswerValue = Optional[Union[str, bool]]


class AnswerStore:
    """Field id -> answer value, plus the current section's error map."""

    def __init__(self):
        self._values: Dict[str, AnswerValue] = {}
        self._errors: Dict[str, str] = {}

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, field_id: str, default: Any = None) -> AnswerValue:
        """Return the current value, or ``default`` if never set."""
        return self._values.get(field_id, default)

    def set(self, field_id: str, value: AnswerValue):
        """Insert or overwrite a value and clear that field's error."""
        self._values[field_id] = value
        self._errors.pop(field_id, None)

    def to_payload(self) -> Dict[str, AnswerValue]:
        """Copy of every answer that was ever set; the submission bundle."""
        return dict(self._values)

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._errors)

    def error_for(self, field_id: str) -> Optional[str]:
        return self._errors.get(field_id)

    def replace_errors(self, errors: Dict[str, str]):
        """Swap in the error map from a fresh validation pass."""
        self._errors = dict(errors)

    def clear_errors(self):
        self._errors = {}
