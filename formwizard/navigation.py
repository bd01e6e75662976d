"""
Section navigation for a multi-step form.

The controller walks an index over the form's sections. Moving forward or
submitting is gated by validating the displayed section; moving back never
is. Progress is ``(index + 1) / section_count``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from formwizard.answers import AnswerStore, AnswerValue
from formwizard.errors import NavigationError
from formwizard.schema import FormDefinition, FormSection
from formwizard.validation import validate_section

logger = logging.getLogger(__name__)

SubmissionSink = Callable[[Dict[str, AnswerValue]], Any]


@dataclass
class NavigationResult:
    """Outcome of a navigation attempt."""
    accepted: bool
    index: int
    errors: Dict[str, str] = field(default_factory=dict)
    receipt: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'ok': self.accepted, 'sectionIndex': self.index, 'errors': self.errors}


class NavigationController:
    """State machine over the section index of one form."""

    def __init__(self, form: FormDefinition, answers: AnswerStore):
        self.form = form
        self.answers = answers
        self.index = 0
        self.finished = False

    @property
    def section_count(self) -> int:
        return self.form.section_count

    @property
    def current_section(self) -> FormSection:
        return self.form.sections[self.index]

    @property
    def is_first_section(self) -> bool:
        return self.index == 0

    @property
    def is_last_section(self) -> bool:
        return self.index == self.section_count - 1

    @property
    def progress(self) -> float:
        return (self.index + 1) / self.section_count

    @property
    def progress_percent(self) -> int:
        return round(self.progress * 100)

    def _ensure_open(self):
        if self.finished:
            raise NavigationError('The form has already been submitted')

    def _validate_current(self) -> Dict[str, str]:
        result = validate_section(self.current_section, self.answers)
        self.answers.replace_errors(result.errors)
        return result.errors

    def advance(self) -> NavigationResult:
        """
        Validate the displayed section and move to the next one if it passes.

        Raises:
            NavigationError: on the last section, where ``submit`` applies
        """
        self._ensure_open()
        if self.is_last_section:
            raise NavigationError('Already on the last section; submit instead')

        errors = self._validate_current()
        if errors:
            logger.info('Advance from section %d rejected with %d error(s)', self.index, len(errors))
            return NavigationResult(accepted=False, index=self.index, errors=errors)

        self.index += 1
        self.answers.clear_errors()
        return NavigationResult(accepted=True, index=self.index)

    def retreat(self) -> NavigationResult:
        """Move back one section without validating; stops at the first."""
        self._ensure_open()
        self.index = max(0, self.index - 1)
        self.answers.clear_errors()
        return NavigationResult(accepted=True, index=self.index)

    def submit(self, sink: SubmissionSink) -> NavigationResult:
        """
        Validate the last section and hand every answer to ``sink``.

        The sink's return value is passed back as the result's ``receipt``.

        Raises:
            NavigationError: before the last section or after a submission
        """
        self._ensure_open()
        if not self.is_last_section:
            raise NavigationError('Submission is only possible from the last section')

        errors = self._validate_current()
        if errors:
            logger.info('Submission rejected with %d error(s)', len(errors))
            return NavigationResult(accepted=False, index=self.index, errors=errors)

        receipt = sink(self.answers.to_payload())
        self.finished = True
        return NavigationResult(accepted=True, index=self.index, receipt=receipt)
