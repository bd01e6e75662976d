"""
Audit logging module for immutable audit trail.

Session and submission events are logged with integrity verification.
This module is append-only - records are never modified or deleted.
"""

import json
from datetime import datetime
from typing import Dict, Any, Optional
from flask import request, current_app

from formwizard import db
from formwizard.models import AuditLog


class AuditAction:
    """Constants for audit actions."""
    # Identity actions
    LOGIN = 'login'
    LOGIN_FAILED = 'login_failed'
    LOGOUT = 'logout'

    # Form session actions
    FORM_LOADED = 'form_loaded'
    FORM_LOAD_FAILED = 'form_load_failed'
    SECTION_REJECTED = 'section_rejected'

    # Submission actions
    SUBMISSION_CREATED = 'submission_created'
    SUBMISSION_REJECTED = 'submission_rejected'


class AuditCategory:
    """Constants for audit action categories."""
    CREATE = 'create'
    READ = 'read'
    AUTH = 'auth'
    VALIDATE = 'validate'
    SYSTEM = 'system'


def log_action(
    action: str,
    action_category: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    submission_id: Optional[int] = None,
    actor_type: str = 'system',
    actor_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
    error_message: Optional[str] = None
) -> Optional[AuditLog]:
    """
    Log an action to the audit trail.

    Args:
        action: The action performed (use AuditAction constants)
        action_category: Category of action (use AuditCategory constants)
        resource_type: Type of resource affected
        resource_id: Identifier of the resource
        submission_id: Associated submission ID if applicable
        actor_type: Type of actor ('user', 'system')
        actor_id: Identifier of the actor (roll number, IP, etc.)
        details: Additional structured details
        success: Whether the action succeeded
        error_message: Error message if action failed

    Returns:
        The created AuditLog record, or None if it could not be stored
    """
    try:
        ip_address = None
        user_agent = None

        try:
            if request:
                ip_address = request.remote_addr
                user_agent = request.headers.get('User-Agent')

                if actor_type == 'user' and not actor_id:
                    actor_id = ip_address
        except RuntimeError:
            # Outside request context
            pass

        audit_log = AuditLog(
            timestamp=datetime.utcnow(),
            action=action,
            action_category=action_category,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            submission_id=submission_id,
            actor_type=actor_type,
            actor_id=actor_id,
            details_json=json.dumps(details, sort_keys=True) if details else None,
            success=success,
            error_message=error_message,
            ip_address=ip_address,
            user_agent=user_agent
        )

        audit_log.integrity_hash = audit_log.compute_integrity_hash()

        db.session.add(audit_log)
        db.session.commit()

        return audit_log

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Failed to create audit log: {str(e)}')
        # Audit logging must not break the request
        return None


def log_login(roll_number: str, success: bool, error: str = None) -> Optional[AuditLog]:
    """Log a login attempt."""
    return log_action(
        action=AuditAction.LOGIN if success else AuditAction.LOGIN_FAILED,
        action_category=AuditCategory.AUTH,
        resource_type='user',
        resource_id=roll_number,
        actor_type='user',
        actor_id=roll_number,
        success=success,
        error_message=error
    )


def log_logout(roll_number: str) -> Optional[AuditLog]:
    """Log a logout."""
    return log_action(
        action=AuditAction.LOGOUT,
        action_category=AuditCategory.AUTH,
        resource_type='user',
        resource_id=roll_number,
        actor_type='user',
        actor_id=roll_number
    )


def log_form_loaded(roll_number: str, form_title: str = None, section_count: int = 0,
                    success: bool = True, error: str = None) -> Optional[AuditLog]:
    """Log the outcome of a schema acquisition."""
    details = {'form_title': form_title, 'section_count': section_count} if success else None
    return log_action(
        action=AuditAction.FORM_LOADED if success else AuditAction.FORM_LOAD_FAILED,
        action_category=AuditCategory.READ,
        resource_type='form',
        resource_id=roll_number,
        actor_type='system',
        details=details,
        success=success,
        error_message=error
    )


def log_validation_result(roll_number: str, section_index: int, errors: Dict[str, str],
                          is_submission: bool = False) -> Optional[AuditLog]:
    """Log a rejected navigation attempt. Only field ids are kept, not answers."""
    return log_action(
        action=AuditAction.SUBMISSION_REJECTED if is_submission else AuditAction.SECTION_REJECTED,
        action_category=AuditCategory.VALIDATE,
        resource_type='section',
        resource_id=str(section_index),
        actor_type='user',
        actor_id=roll_number,
        details={'error_count': len(errors), 'fields': sorted(errors)},
        success=False
    )


def log_submission_created(submission_id: int, roll_number: str, payload_sha256: str) -> Optional[AuditLog]:
    """Log a stored submission."""
    return log_action(
        action=AuditAction.SUBMISSION_CREATED,
        action_category=AuditCategory.CREATE,
        resource_type='submission',
        resource_id=str(submission_id),
        submission_id=submission_id,
        actor_type='user',
        actor_id=roll_number,
        details={'payload_sha256': payload_sha256}
    )


def verify_audit_integrity() -> tuple:
    """
    Verify integrity of all audit log records.

    Returns:
        Tuple of (valid_count, invalid_count, invalid_ids)
    """
    logs = AuditLog.query.all()
    valid_count = 0
    invalid_count = 0
    invalid_ids = []

    for log in logs:
        if log.verify_integrity():
            valid_count += 1
        else:
            invalid_count += 1
            invalid_ids.append(log.id)

    return valid_count, invalid_count, invalid_ids
