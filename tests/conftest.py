import pytest

from lesson_tutor.orchestrator import TurnOrchestrator
from lesson_tutor.session_manager import InMemorySessionStore
from lesson_tutor.tools import ToolRegistry


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def make_orchestrator(store):
    def _make(llm, capabilities=None, max_tool_rounds=5, history_window=12):
        registry = ToolRegistry(capabilities=capabilities)
        return TurnOrchestrator(
            store, registry, llm, history_window=history_window, max_tool_rounds=max_tool_rounds
        )
    return _make
