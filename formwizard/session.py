"""
Form session lifecycle.

A session belongs to one logged-in user. It acquires the form schema once,
then owns the answer store and navigation controller until the form is
submitted or the session is closed.

Acquisition is the only asynchronous step. It runs as an asyncio task tied
to the session's generation: ``close()`` bumps the generation and cancels
the task, and a result that arrives for an older generation is dropped
instead of being applied.

Flask serves requests on several threads, so every transition (edit,
next, previous, submit, close) runs under the session's own lock: a check
and the change it guards are never split across two requests.
"""

import asyncio
import logging
import secrets
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from formwizard.answers import AnswerStore, AnswerValue
from formwizard.errors import AcquisitionError, SessionStateError
from formwizard.navigation import NavigationController, NavigationResult, SubmissionSink
from formwizard.schema import FormDefinition, FormField, User

logger = logging.getLogger(__name__)

FormFetcher = Callable[[str], FormDefinition]


class SessionState(Enum):
    """Session lifecycle states."""
    PENDING = 'pending'
    LOADING = 'loading'
    ACTIVE = 'active'
    SUBMITTED = 'submitted'
    FAILED = 'failed'
    CLOSED = 'closed'


class FormSession:
    """One user's pass through one form."""

    def __init__(self, user: User, session_id: str = None):
        self.user = user
        self.session_id = session_id or secrets.token_urlsafe(24)
        self.state = SessionState.PENDING
        self.generation = 0
        self.form: Optional[FormDefinition] = None
        self.answers = AnswerStore()
        self.navigation: Optional[NavigationController] = None
        self.failure_message: Optional[str] = None
        self.created_at = datetime.utcnow()
        self.last_activity_at = self.created_at
        self._load_task: Optional[asyncio.Future] = None
        self._lock = threading.Lock()

    def __repr__(self):
        return f'<FormSession {self.session_id[:8]} {self.user.roll_number} - {self.state.value}>'

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def touch(self):
        self.last_activity_at = datetime.utcnow()

    async def load(self, fetch_form: FormFetcher, timeout: float = None) -> Optional[FormDefinition]:
        """
        Acquire the form schema and start navigation at the first section.

        ``fetch_form`` is a blocking callable taking the user's roll number;
        it runs in a worker thread.

        Returns:
            The form, or None if the session was closed while loading

        Raises:
            AcquisitionError: if the fetch failed, timed out or returned a bad shape
            SessionStateError: if the session is not waiting for a schema
        """
        with self._lock:
            if self.state not in (SessionState.PENDING, SessionState.FAILED):
                raise SessionStateError(f'Cannot load a form while {self.state.value}')

            generation = self.generation
            self.state = SessionState.LOADING
            self._load_task = asyncio.ensure_future(
                asyncio.wait_for(asyncio.to_thread(fetch_form, self.user.roll_number), timeout)
            )

        try:
            form = await self._load_task
        except asyncio.CancelledError:
            if generation != self.generation:
                logger.info('Discarded cancelled form load for %s', self.user.roll_number)
                return None
            raise
        except asyncio.TimeoutError:
            return self._fail(generation, AcquisitionError('Timed out while loading the form'))
        except AcquisitionError as e:
            return self._fail(generation, e)
        finally:
            self._load_task = None

        with self._lock:
            if generation != self.generation:
                logger.info('Discarded late form load for %s', self.user.roll_number)
                return None

            self.form = form
            self.navigation = NavigationController(form, self.answers)
            self.state = SessionState.ACTIVE
            self.touch()
        logger.info('Loaded form %r for %s (%d sections)',
                    form.form_title, self.user.roll_number, form.section_count)
        return form

    def _fail(self, generation: int, error: AcquisitionError) -> None:
        with self._lock:
            if generation != self.generation:
                logger.info('Discarded late load failure for %s: %s', self.user.roll_number, error)
                return None
            self.state = SessionState.FAILED
            self.failure_message = str(error)
        logger.warning('Form load failed for %s: %s', self.user.roll_number, error)
        raise error

    def close(self):
        """End the session; any in-flight load is cancelled and its result ignored."""
        with self._lock:
            self.generation += 1
            task = self._load_task
            if task is not None and not task.done():
                task.get_loop().call_soon_threadsafe(task.cancel)
            self.state = SessionState.CLOSED
        logger.info('Closed session for %s', self.user.roll_number)

    def require_active(self) -> NavigationController:
        """Raise unless the form is editable. Transitions call this under the session lock."""
        if self.state != SessionState.ACTIVE or self.navigation is None:
            raise SessionStateError(f'Form is not editable while {self.state.value}')
        self.touch()
        return self.navigation

    def get_field(self, field_id: str) -> Optional[FormField]:
        return self.form.get_field(field_id) if self.form else None

    def set_answer(self, field_id: str, value: AnswerValue):
        with self._lock:
            self.require_active()
            self.answers.set(field_id, value)

    def advance(self) -> NavigationResult:
        with self._lock:
            return self.require_active().advance()

    def retreat(self) -> NavigationResult:
        with self._lock:
            return self.require_active().retreat()

    def submit(self, sink: SubmissionSink) -> NavigationResult:
        """Hand the answers to ``sink`` at most once, however many requests race."""
        with self._lock:
            result = self.require_active().submit(sink)
            if result.accepted:
                self.state = SessionState.SUBMITTED
                logger.info('Form %r submitted by %s', self.form.form_title, self.user.roll_number)
            return result

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the session for the UI."""
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> Dict[str, Any]:
        data = {
            'state': self.state.value,
            'user': self.user.to_dict(),
        }
        if self.state == SessionState.FAILED:
            data['error'] = self.failure_message
        if self.navigation is None:
            return data

        nav = self.navigation
        section = nav.current_section
        data.update({
            'formTitle': self.form.form_title,
            'sectionIndex': nav.index,
            'sectionCount': nav.section_count,
            'progress': nav.progress,
            'progressPercent': nav.progress_percent,
            'isFirstSection': nav.is_first_section,
            'isLastSection': nav.is_last_section,
            'section': section.to_dict(),
            'answers': {
                f.field_id: self.answers.get(f.field_id)
                for f in section.fields if f.field_id in self.answers
            },
            'errors': self.answers.errors,
        })
        return data


class SessionRegistry:
    """Process-local lookup of live sessions by token, with idle expiry."""

    def __init__(self, idle_timeout: int = 3600):
        self.idle_timeout = timedelta(seconds=idle_timeout)
        self._sessions: Dict[str, FormSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, user: User) -> FormSession:
        self.purge_expired()
        form_session = FormSession(user)
        with self._lock:
            self._sessions[form_session.session_id] = form_session
        return form_session

    def get(self, session_id: Optional[str]) -> Optional[FormSession]:
        if not session_id:
            return None
        with self._lock:
            form_session = self._sessions.get(session_id)
        if form_session is None:
            return None
        if self._is_expired(form_session):
            self.discard(session_id)
            return None
        return form_session

    def discard(self, session_id: Optional[str]) -> Optional[FormSession]:
        """Close and forget a session."""
        if not session_id:
            return None
        with self._lock:
            form_session = self._sessions.pop(session_id, None)
        if form_session is not None and form_session.state != SessionState.CLOSED:
            form_session.close()
        return form_session

    def discard_user(self, roll_number: str) -> int:
        """
        Close and forget every session of one user.

        The login response that carries a session's cookie is only sent once
        loading ends, so a second login cannot name a session still loading
        by token. Matching on the roll number reaches it and cancels its load.
        """
        with self._lock:
            owned = [sid for sid, s in self._sessions.items() if s.user.roll_number == roll_number]
        for sid in owned:
            self.discard(sid)
        return len(owned)

    def purge_expired(self) -> int:
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if self._is_expired(s)]
        for sid in expired:
            self.discard(sid)
        if expired:
            logger.info('Purged %d idle session(s)', len(expired))
        return len(expired)

    def _is_expired(self, form_session: FormSession) -> bool:
        return datetime.utcnow() - form_session.last_activity_at > self.idle_timeout
