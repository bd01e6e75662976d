"""
Form Session Tests

Tests for the session lifecycle:
- Schema acquisition success, failure and timeout
- Late results discarded after the session is closed
- Editing and navigation only while active
- Overlapping requests against one session
- Registry lookup, idle expiry and per-user replacement
"""

import asyncio
import threading
import time
import unittest
from datetime import datetime, timedelta
from unittest import mock

from formwizard import navigation
from formwizard.errors import AcquisitionError, NavigationError, SessionStateError
from formwizard.schema import FormDefinition, FormField, FormSection, User
from formwizard.session import FormSession, SessionRegistry, SessionState


def one_field_form():
    return FormDefinition(
        form_title='Quick Form',
        sections=(FormSection(
            title='Only',
            fields=(FormField(field_id='name', raw_type='text', required=True),)
        ),)
    )


def two_field_form():
    return FormDefinition(
        form_title='Two Steps',
        sections=tuple(
            FormSection(
                title=f'Step {i + 1}',
                fields=(FormField(field_id=f'q{i}', raw_type='text', required=True),)
            )
            for i in range(2)
        )
    )


USER = User(roll_number='R-1', name='Ada')


def slow_validation(delay=0.05):
    """Widen the window between a transition's checks and its update."""
    validate = navigation.validate_section

    def slow(section, answers):
        time.sleep(delay)
        return validate(section, answers)

    return mock.patch('formwizard.navigation.validate_section', side_effect=slow)


def run_together(action, count=2):
    """Call ``action`` from several threads at once; collect results and errors."""
    barrier = threading.Barrier(count)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            outcome = action()
        except Exception as e:
            outcome = e
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)
    return outcomes


class TestSessionLoading(unittest.TestCase):
    """Test schema acquisition."""

    def test_load_activates_session(self):
        form_session = FormSession(USER)
        form = asyncio.run(form_session.load(lambda roll: one_field_form()))

        self.assertEqual(form.form_title, 'Quick Form')
        self.assertEqual(form_session.state, SessionState.ACTIVE)
        self.assertEqual(form_session.navigation.index, 0)

    def test_fetch_receives_roll_number(self):
        seen = []

        def fetch(roll):
            seen.append(roll)
            return one_field_form()

        asyncio.run(FormSession(USER).load(fetch))
        self.assertEqual(seen, ['R-1'])

    def test_failure_creates_no_controller(self):
        def fetch(roll):
            raise AcquisitionError('Form not found for roll number', status_code=404)

        form_session = FormSession(USER)
        with self.assertRaises(AcquisitionError) as ctx:
            asyncio.run(form_session.load(fetch))

        self.assertEqual(str(ctx.exception), 'Form not found for roll number')
        self.assertEqual(form_session.state, SessionState.FAILED)
        self.assertIsNone(form_session.navigation)
        self.assertEqual(form_session.snapshot()['error'], 'Form not found for roll number')

    def test_timeout_is_an_acquisition_error(self):
        def slow_fetch(roll):
            time.sleep(0.5)
            return one_field_form()

        form_session = FormSession(USER)
        with self.assertRaises(AcquisitionError):
            asyncio.run(form_session.load(slow_fetch, timeout=0.05))

        self.assertEqual(form_session.state, SessionState.FAILED)
        self.assertIsNone(form_session.navigation)

    def test_close_during_load_discards_result(self):
        started = threading.Event()
        release = threading.Event()

        def slow_fetch(roll):
            started.set()
            release.wait(2)
            return one_field_form()

        form_session = FormSession(USER)

        async def scenario():
            task = asyncio.ensure_future(form_session.load(slow_fetch))
            await asyncio.to_thread(started.wait, 2)
            form_session.close()
            release.set()
            return await task

        self.assertIsNone(asyncio.run(scenario()))
        self.assertEqual(form_session.state, SessionState.CLOSED)
        self.assertIsNone(form_session.navigation)
        self.assertIsNone(form_session.form)

    def test_result_for_old_generation_is_dropped(self):
        form_session = FormSession(USER)

        def fetch_then_logout(roll):
            form_session.close()
            return one_field_form()

        self.assertIsNone(asyncio.run(form_session.load(fetch_then_logout)))
        self.assertIsNone(form_session.navigation)
        self.assertEqual(form_session.state, SessionState.CLOSED)

    def test_cannot_load_twice(self):
        form_session = FormSession(USER)
        asyncio.run(form_session.load(lambda roll: one_field_form()))
        with self.assertRaises(SessionStateError):
            asyncio.run(form_session.load(lambda roll: one_field_form()))


class TestActiveSession(unittest.TestCase):
    """Test editing and navigation through the session."""

    def setUp(self):
        self.form_session = FormSession(USER)
        asyncio.run(self.form_session.load(lambda roll: one_field_form()))
        self.received = []

    def sink(self, payload):
        self.received.append(payload)
        return len(self.received)

    def test_end_to_end_submit(self):
        rejected = self.form_session.submit(self.sink)
        self.assertFalse(rejected.accepted)
        self.assertEqual(len(rejected.errors), 1)

        self.form_session.set_answer('name', 'Ada Lovelace')
        accepted = self.form_session.submit(self.sink)

        self.assertTrue(accepted.accepted)
        self.assertEqual(self.received, [{'name': 'Ada Lovelace'}])
        self.assertEqual(self.form_session.state, SessionState.SUBMITTED)

    def test_no_edits_after_submit(self):
        self.form_session.set_answer('name', 'Ada')
        self.form_session.submit(self.sink)
        with self.assertRaises(SessionStateError):
            self.form_session.set_answer('name', 'Grace')

    def test_no_edits_before_load(self):
        with self.assertRaises(SessionStateError):
            FormSession(USER).set_answer('name', 'Ada')

    def test_no_edits_after_close(self):
        self.form_session.close()
        with self.assertRaises(SessionStateError):
            self.form_session.advance()

    def test_snapshot(self):
        self.form_session.submit(self.sink)
        snapshot = self.form_session.snapshot()
        self.assertEqual(snapshot['state'], 'active')
        self.assertEqual(snapshot['formTitle'], 'Quick Form')
        self.assertEqual(snapshot['sectionIndex'], 0)
        self.assertEqual(snapshot['sectionCount'], 1)
        self.assertEqual(snapshot['progress'], 1.0)
        self.assertTrue(snapshot['isLastSection'])
        self.assertEqual(snapshot['errors'], {'name': 'This field is required'})
        self.assertEqual(snapshot['user'], {'rollNumber': 'R-1', 'name': 'Ada'})


class TestOverlappingRequests(unittest.TestCase):
    """Test that transitions on one session never interleave."""

    def load(self, build_form):
        form_session = FormSession(USER)
        asyncio.run(form_session.load(lambda roll: build_form()))
        return form_session

    def test_concurrent_advances_move_one_section(self):
        form_session = self.load(two_field_form)
        form_session.set_answer('q0', 'yes')

        with slow_validation():
            outcomes = run_together(form_session.advance)

        accepted = [o for o in outcomes if not isinstance(o, Exception) and o.accepted]
        refused = [o for o in outcomes if isinstance(o, NavigationError)]
        self.assertEqual(len(accepted), 1)
        self.assertEqual(len(refused), 1)
        self.assertEqual(form_session.navigation.index, 1)
        self.assertEqual(form_session.snapshot()['section']['title'], 'Step 2')

    def test_concurrent_submits_reach_sink_once(self):
        form_session = self.load(one_field_form)
        form_session.set_answer('name', 'Ada')
        received = []

        with slow_validation():
            outcomes = run_together(lambda: form_session.submit(received.append))

        self.assertEqual(received, [{'name': 'Ada'}])
        self.assertEqual(sum(isinstance(o, SessionStateError) for o in outcomes), 1)
        self.assertEqual(form_session.state, SessionState.SUBMITTED)


class TestSessionRegistry(unittest.TestCase):
    """Test the live session registry."""

    def test_create_and_get(self):
        registry = SessionRegistry()
        form_session = registry.create(USER)
        self.assertIs(registry.get(form_session.session_id), form_session)
        self.assertIsNone(registry.get('unknown'))
        self.assertIsNone(registry.get(None))

    def test_discard_closes_session(self):
        registry = SessionRegistry()
        form_session = registry.create(USER)
        registry.discard(form_session.session_id)
        self.assertEqual(form_session.state, SessionState.CLOSED)
        self.assertIsNone(registry.get(form_session.session_id))

    def test_idle_sessions_expire(self):
        registry = SessionRegistry(idle_timeout=60)
        form_session = registry.create(USER)
        form_session.last_activity_at = datetime.utcnow() - timedelta(minutes=5)

        self.assertIsNone(registry.get(form_session.session_id))
        self.assertEqual(form_session.state, SessionState.CLOSED)
        self.assertEqual(len(registry), 0)

    def test_discard_user_closes_only_that_users_sessions(self):
        registry = SessionRegistry()
        first = registry.create(USER)
        second = registry.create(USER)
        other = registry.create(User('R-2', 'Grace'))

        self.assertEqual(registry.discard_user('R-1'), 2)
        self.assertEqual(first.state, SessionState.CLOSED)
        self.assertEqual(second.state, SessionState.CLOSED)
        self.assertIs(registry.get(other.session_id), other)
        self.assertEqual(len(registry), 1)

    def test_discard_user_cancels_load_in_flight(self):
        registry = SessionRegistry()
        form_session = registry.create(USER)
        started = threading.Event()
        release = threading.Event()

        def slow_fetch(roll):
            started.set()
            release.wait(2)
            return one_field_form()

        async def scenario():
            task = asyncio.ensure_future(form_session.load(slow_fetch))
            await asyncio.to_thread(started.wait, 2)
            registry.discard_user('R-1')
            release.set()
            return await task

        self.assertIsNone(asyncio.run(scenario()))
        self.assertEqual(form_session.state, SessionState.CLOSED)
        self.assertIsNone(form_session.navigation)

    def test_purge_expired(self):
        registry = SessionRegistry(idle_timeout=60)
        stale = registry.create(USER)
        fresh = registry.create(User('R-2', 'Grace'))
        stale.last_activity_at = datetime.utcnow() - timedelta(minutes=5)

        self.assertEqual(registry.purge_expired(), 1)
        self.assertIs(registry.get(fresh.session_id), fresh)


if __name__ == '__main__':
    unittest.main()
