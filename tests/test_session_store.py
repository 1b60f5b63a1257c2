from unittest.mock import MagicMock

import pytest

from lesson_tutor.context import SessionState, create_message
from lesson_tutor.core.enums import Role
from lesson_tutor.session_manager import InMemorySessionStore, SupabaseSessionStore


def _supabase(row=None):
    client = MagicMock()
    table = client.table.return_value
    query = table.select.return_value.eq.return_value.maybe_single.return_value
    query.execute.return_value = None if row is None else MagicMock(data=row)
    return client, table


def test_in_memory_creates_initial_state():
    store = InMemorySessionStore()

    state = store.load("s1")

    assert state == SessionState.initial("s1")
    assert state.messages == ()
    assert state.lesson_state.initialized is False
    assert state.processing is False


def test_in_memory_reset_discards_everything():
    store = InMemorySessionStore()
    state = store.load("s1")
    store.save(state.with_message(create_message(Role.USER, "hi")).model_copy(update={"processing": True}))

    store.reset("s1")

    assert store.load("s1") == SessionState.initial("s1")


def test_supabase_load_existing_row():
    stored = SessionState.initial("s1").with_message(create_message(Role.USER, "hi"))
    client, table = _supabase({"state": stored.to_json()})

    state = SupabaseSessionStore(client).load("s1")

    client.table.assert_any_call("chat_sessions")
    table.select.assert_called_with("state")
    table.select.return_value.eq.assert_called_with("id", "s1")
    assert state == stored


def test_supabase_load_missing_row_creates_it():
    client, table = _supabase(None)

    state = SupabaseSessionStore(client).load("s2")

    assert state == SessionState.initial("s2")
    payload = table.upsert.call_args.args[0]
    assert payload["id"] == "s2"
    assert payload["state"]["sessionId"] == "s2"
    assert payload["state"]["lessonState"]["currentStepIndex"] == 0


def test_supabase_save_errors_propagate():
    client, table = _supabase(None)
    table.upsert.return_value.execute.side_effect = RuntimeError("connection refused")

    with pytest.raises(RuntimeError):
        SupabaseSessionStore(client).save(SessionState.initial("s3"))


def test_state_json_roundtrip_uses_camel_case():
    state = SessionState.initial("s1").with_message(create_message(Role.USER, "hi"))

    data = state.to_json()

    assert set(data) == {"sessionId", "messages", "lessonState", "model", "processing"}
    assert data["messages"][0]["role"] == "user"
    assert SessionState.model_validate(data) == state
