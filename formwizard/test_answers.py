"""
Unit tests for the answer store.
"""

from formwizard.answers import AnswerStore


class TestAnswerStore:
    def test_get_unset_is_absent(self):
        store = AnswerStore()
        assert store.get('missing') is None
        assert 'missing' not in store

    def test_set_and_overwrite(self):
        store = AnswerStore()
        store.set('name', 'Ada')
        store.set('name', 'Grace')
        assert store.get('name') == 'Grace'
        assert len(store) == 1

    def test_empty_string_is_distinct_from_absent(self):
        store = AnswerStore()
        store.set('name', '')
        assert 'name' in store
        assert store.get('name') == ''

    def test_set_clears_only_that_fields_error(self):
        store = AnswerStore()
        store.replace_errors({'name': 'This field is required', 'email': 'Bad email'})
        store.set('name', 'Ada')
        assert store.errors == {'email': 'Bad email'}
        assert store.error_for('name') is None

    def test_set_without_error_is_harmless(self):
        store = AnswerStore()
        store.replace_errors({'email': 'Bad email'})
        store.set('other', True)
        assert store.errors == {'email': 'Bad email'}

    def test_replace_errors_does_not_merge(self):
        store = AnswerStore()
        store.replace_errors({'a': 'one'})
        store.replace_errors({'b': 'two'})
        assert store.errors == {'b': 'two'}

    def test_errors_returns_a_copy(self):
        store = AnswerStore()
        store.replace_errors({'a': 'one'})
        store.errors.clear()
        assert store.errors == {'a': 'one'}

    def test_payload_holds_only_fields_ever_set(self):
        store = AnswerStore()
        store.set('name', 'Ada')
        store.set('agree', False)
        payload = store.to_payload()
        assert payload == {'name': 'Ada', 'agree': False}
        payload['name'] = 'changed'
        assert store.get('name') == 'Ada'
