"""
Database models for completed form submissions and the audit trail.

Enhanced with:
- Stable payload serialisation and SHA-256 fingerprint per submission
- Append-only audit log with integrity hash
"""

import json
from datetime import datetime
from formwizard import db
from formwizard.utils import calculate_sha256, stable_json


class FormSubmission(db.Model):
    """
    A finished, validated answer bundle handed over at the end of a session.
    """
    __tablename__ = 'form_submissions'

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Who submitted
    roll_number = db.Column(db.String(100), nullable=False, index=True)
    user_name = db.Column(db.String(200), nullable=False)

    # Which form
    form_id = db.Column(db.String(100), nullable=True)
    form_title = db.Column(db.String(300), nullable=False)
    form_version = db.Column(db.String(50), nullable=True)

    # Answers
    payload_json = db.Column(db.Text, nullable=False)
    payload_sha256 = db.Column(db.String(64), nullable=False)
    answer_count = db.Column(db.Integer, default=0, nullable=False)

    # Request context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    audit_logs = db.relationship('AuditLog', backref='submission', lazy='dynamic')

    def __repr__(self):
        return f'<FormSubmission {self.id} - {self.roll_number}>'

    def get_payload(self):
        """Deserialize the JSON payload."""
        return json.loads(self.payload_json)

    def set_payload(self, payload):
        """Serialize the payload to JSON with stable ordering and fingerprint it."""
        self.payload_json = stable_json(payload)
        self.payload_sha256 = calculate_sha256(self.payload_json.encode('utf-8'))
        self.answer_count = len(payload)

    def verify_payload(self):
        """Check the stored payload still matches its fingerprint."""
        return calculate_sha256(self.payload_json.encode('utf-8')) == self.payload_sha256

    def to_dict(self):
        """Convert submission to dictionary for API responses."""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'roll_number': self.roll_number,
            'user_name': self.user_name,
            'form_id': self.form_id,
            'form_title': self.form_title,
            'form_version': self.form_version,
            'answer_count': self.answer_count,
            'payload_sha256': self.payload_sha256,
        }


class AuditLog(db.Model):
    """
    Immutable audit trail for session and submission events.

    This table is append-only. Records are never modified or deleted.
    """
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Who performed the action
    actor_type = db.Column(db.String(20), nullable=False)  # 'user' or 'system'
    actor_id = db.Column(db.String(100), nullable=True)  # roll number, IP address, or None

    # What was done
    action = db.Column(db.String(50), nullable=False)
    action_category = db.Column(db.String(20), nullable=False)

    # What was affected
    submission_id = db.Column(db.Integer, db.ForeignKey('form_submissions.id'), nullable=True)
    resource_type = db.Column(db.String(50), nullable=False)
    resource_id = db.Column(db.String(100), nullable=True)

    details_json = db.Column(db.Text, nullable=True)

    # Outcome
    success = db.Column(db.Boolean, nullable=False)
    error_message = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    integrity_hash = db.Column(db.String(64), nullable=False)

    def __repr__(self):
        return f'<AuditLog {self.id} - {self.action} by {self.actor_type}>'

    def to_dict(self):
        """Convert audit log to dictionary."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'action': self.action,
            'action_category': self.action_category,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'submission_id': self.submission_id,
            'details': json.loads(self.details_json) if self.details_json else None,
            'success': self.success,
            'error_message': self.error_message
        }

    def compute_integrity_hash(self):
        """Compute hash of this record's content for tamper detection."""
        content = f"{self.timestamp}{self.actor_type}{self.actor_id}{self.action}{self.resource_type}{self.resource_id}{self.details_json}"
        return calculate_sha256(content.encode())

    def verify_integrity(self):
        """Verify this record has not been tampered with."""
        return self.integrity_hash == self.compute_integrity_hash()
