"""
Submission sink: where a finished answer bundle goes.

The navigation controller hands the complete answer store to a sink, any
callable taking the payload dict. ``DatabaseSubmissionSink`` stores it as a
FormSubmission row and records the event in the audit trail.
"""

from typing import Any, Dict, Optional

from formwizard import db
from formwizard.audit_logger import log_submission_created
from formwizard.models import FormSubmission
from formwizard.schema import FormDefinition, User


class DatabaseSubmissionSink:
    """Persist a submitted bundle for one user and form."""

    def __init__(self, user: User, form: FormDefinition,
                 ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.user = user
        self.form = form
        self.ip_address = ip_address
        self.user_agent = user_agent

    def __call__(self, payload: Dict[str, Any]) -> FormSubmission:
        submission = FormSubmission(
            roll_number=self.user.roll_number,
            user_name=self.user.name,
            form_id=self.form.form_id,
            form_title=self.form.form_title,
            form_version=self.form.version,
            ip_address=self.ip_address,
            user_agent=self.user_agent[:500] if self.user_agent else None
        )
        submission.set_payload(payload)

        db.session.add(submission)
        db.session.commit()

        log_submission_created(
            submission_id=submission.id,
            roll_number=self.user.roll_number,
            payload_sha256=submission.payload_sha256
        )
        return submission
