"""
Turn orchestration: one user message in, one assistant answer out.

    Idle -> AwaitingModel -> (ExecutingTools -> AwaitingModel)* -> Done | Failed

A turn is split in two so the HTTP layer can reject bad input before it commits
to a streamed response:

* ``begin_turn`` validates the input, commits the user message with
  ``processing=True`` and returns a PreparedTurn.
* ``run_turn`` (buffered) or ``stream_turn`` (incremental) drives the model/tool
  loop and commits the outcome.

The session state is committed at three points only: after the user message is
appended, after the turn succeeds, and after it fails or is abandoned.
"""
import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import ValidationError

from lesson_tutor.config import (
    API_RESPONSES,
    EMPTY_REPLY_FALLBACK,
    HISTORY_WINDOW,
    MAX_TOOL_ROUNDS,
    STREAM_ERROR_NOTICE,
)
from lesson_tutor.context import Attachment, LessonState, SessionState, ToolCall, create_message
from lesson_tutor.context_builder import (
    assistant_tool_call_message,
    build_model_messages,
    tool_result_messages,
)
from lesson_tutor.core.enums import Role, TurnPhase
from lesson_tutor.core.llm import LLMClient, ModelReply, PendingToolCall, ToolCallDelta
from lesson_tutor.exceptions import InvalidModelError, MissingInputError, SessionBusyError
from lesson_tutor.lesson_state import LESSON_TOOLS, apply_lesson_tool, lesson_summary
from lesson_tutor.prompts import FINAL_ANSWER_INSTRUCTION
from lesson_tutor.session_manager import SessionStore
from lesson_tutor.tools import ToolRegistry, safe_arguments


@dataclass(frozen=True)
class PreparedTurn:
    session_id: str
    user_message_id: str
    model: str
    messages: List[Dict[str, Any]]
    lesson_state: LessonState


@dataclass
class TurnOutcome:
    phase: TurnPhase = TurnPhase.IDLE
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    lesson_state: Optional[LessonState] = None
    rounds: int = 0


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments, keyed by the call index."""

    def __init__(self):
        self._calls: Dict[int, Dict[str, Any]] = {}

    def add(self, delta: ToolCallDelta) -> None:
        entry = self._calls.setdefault(delta.index, {"id": None, "name": "", "arguments": ""})
        if delta.id and not entry["id"]:
            entry["id"] = delta.id
        if delta.name and not entry["name"]:
            entry["name"] = delta.name
        if delta.arguments:
            entry["arguments"] += delta.arguments

    def build(self) -> List[PendingToolCall]:
        return [PendingToolCall(**self._calls[index]) for index in sorted(self._calls)]


def assign_call_ids(calls: Sequence[PendingToolCall], round_index: int) -> List[PendingToolCall]:
    """Give every call a unique id; missing or repeated ids get a synthetic one."""
    seen = set()
    out = []
    for position, call in enumerate(calls):
        call_id = call.id
        if not call_id or call_id in seen:
            call_id = f"call_{round_index}_{position}"
            while call_id in seen:
                call_id += "_"
        seen.add(call_id)
        out.append(call.model_copy(update={"id": call_id}))
    return out


class TurnStream:
    """Async iterator over the fragments of one streamed turn.

    Closing it always settles the session: a stream that is closed before its
    first fragment was pulled releases the turn itself.
    """

    def __init__(self, orchestrator: "TurnOrchestrator", turn: "PreparedTurn"):
        self._orchestrator = orchestrator
        self._turn = turn
        self._fragments = orchestrator._stream_fragments(turn)
        self._started = False
        self._closed = False

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        self._started = True
        return await self._fragments.__anext__()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._started:
            logger.info(f"Stream for session {self._turn.session_id} closed before it started")
            self._orchestrator._release(self._turn)
        await self._fragments.aclose()


class TurnOrchestrator:
    """Drives the model/tool loop for one session turn at a time."""

    def __init__(
        self,
        store: SessionStore,
        registry: ToolRegistry,
        llm: LLMClient,
        *,
        history_window: int = HISTORY_WINDOW,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
    ):
        self.store = store
        self.registry = registry
        self.llm = llm
        self.history_window = history_window
        self.max_tool_rounds = max_tool_rounds

    # --- Session operations ---

    def get_state(self, session_id: str) -> SessionState:
        return self.store.load(session_id)

    def clear(self, session_id: str) -> SessionState:
        """Reset the session. A turn still in flight will have its answer discarded."""
        logger.info(f"Clearing session {session_id}")
        return self.store.reset(session_id)

    def set_model(self, session_id: str, model: Optional[str]) -> SessionState:
        model = (model or "").strip()
        if not model:
            raise InvalidModelError(API_RESPONSES["INVALID_MODEL"])
        state = self.store.load(session_id).model_copy(update={"model": model})
        self.store.save(state)
        return state

    # --- Turn lifecycle ---

    def begin_turn(
        self,
        session_id: str,
        message: Optional[str],
        attachments: Optional[Sequence[Attachment]] = None,
        model: Optional[str] = None,
    ) -> PreparedTurn:
        text = (message or "").strip()
        attachments = list(attachments or [])
        if not text and not attachments:
            raise MissingInputError(API_RESPONSES["MISSING_MESSAGE"])

        state = self.store.load(session_id)
        if state.processing:
            raise SessionBusyError(API_RESPONSES["SESSION_BUSY"])

        model = (model or "").strip()
        if model and model != state.model:
            state = state.model_copy(update={"model": model})

        history = state.messages
        user_message = create_message(Role.USER, text, after=history, attachments=attachments)
        state = state.with_message(user_message).model_copy(update={"processing": True})
        self.store.save(state)

        logger.info(
            f"Turn started for session {session_id} (model={state.model}, "
            f"attachments={len(attachments)}, history={len(history)})"
        )
        return PreparedTurn(
            session_id=session_id,
            user_message_id=user_message.id,
            model=state.model,
            messages=build_model_messages(
                state.lesson_state, history, text, attachments, window=self.history_window
            ),
            lesson_state=state.lesson_state,
        )

    async def run_turn(self, turn: PreparedTurn) -> SessionState:
        """Buffered turn. Returns the committed state; provider errors propagate."""
        outcome = TurnOutcome()
        settled = False
        try:
            async with aclosing(self._rounds(turn, outcome, stream=False)) as rounds:
                async for _ in rounds:
                    pass
            state = self._commit_success(turn, outcome)
            settled = True
            return state
        except Exception as e:
            logger.error(
                f"Turn failed for session {turn.session_id} while {outcome.phase.value} "
                f"(round {outcome.rounds}): {e}"
            )
            outcome.phase = TurnPhase.FAILED
            raise
        finally:
            if not settled:
                self._release(turn)

    def stream_turn(self, turn: PreparedTurn) -> TurnStream:
        """Incremental turn. Yields text fragments in the order the model produced them.

        On failure a single human-readable notice is yielded before the stream ends.
        If the consumer stops early, or closes the stream without reading it,
        nothing of the partial answer is committed.
        """
        return TurnStream(self, turn)

    async def _stream_fragments(self, turn: PreparedTurn) -> AsyncIterator[str]:
        outcome = TurnOutcome()
        settled = False
        failed = False
        try:
            async with aclosing(self._rounds(turn, outcome, stream=True)) as rounds:
                async for fragment in rounds:
                    yield fragment
            self._commit_success(turn, outcome)
            settled = True
        except Exception as e:
            logger.error(
                f"Streaming turn failed for session {turn.session_id} while {outcome.phase.value}: {e}"
            )
            outcome.phase = TurnPhase.FAILED
            self._release(turn)
            settled = True
            failed = True
        finally:
            if not settled:
                logger.info(
                    f"Stream for session {turn.session_id} closed while {outcome.phase.value}; "
                    "partial answer discarded"
                )
                self._release(turn)
        if failed:
            yield STREAM_ERROR_NOTICE

    # --- Model/tool loop ---

    async def _rounds(self, turn: PreparedTurn, outcome: TurnOutcome, stream: bool) -> AsyncIterator[str]:
        messages = list(turn.messages)
        lesson = turn.lesson_state
        specs = [d.to_openai() for d in await self.registry.list_definitions()]
        fragments: List[str] = []

        for round_index in range(self.max_tool_rounds + 1):
            offer_tools = round_index < self.max_tool_rounds
            if not offer_tools:
                logger.warning(f"Session {turn.session_id} hit {self.max_tool_rounds} tool rounds; asking for a final answer")
                messages.append({"role": "system", "content": FINAL_ANSWER_INSTRUCTION})
            tools = specs if offer_tools else None

            outcome.phase = TurnPhase.AWAITING_MODEL
            outcome.rounds = round_index + 1
            if stream:
                accumulator = ToolCallAccumulator()
                round_text: List[str] = []
                async with aclosing(self.llm.stream(turn.model, messages, tools)) as deltas:
                    async for delta in deltas:
                        if delta.content:
                            round_text.append(delta.content)
                            fragments.append(delta.content)
                            yield delta.content
                        for tool_delta in delta.tool_calls:
                            accumulator.add(tool_delta)
                reply = ModelReply(content="".join(round_text) or None, tool_calls=accumulator.build())
            else:
                reply = await self.llm.complete(turn.model, messages, tools)

            calls = assign_call_ids(reply.tool_calls, round_index)
            if calls and not offer_tools:
                logger.warning(f"Ignoring {len(calls)} tool calls requested after the round limit")
                calls = []

            if not calls:
                if stream:
                    if not fragments:
                        fragments.append(EMPTY_REPLY_FALLBACK)
                        yield EMPTY_REPLY_FALLBACK
                    outcome.content = "".join(fragments)
                else:
                    outcome.content = reply.content or EMPTY_REPLY_FALLBACK
                outcome.lesson_state = lesson
                outcome.phase = TurnPhase.DONE
                return

            outcome.phase = TurnPhase.EXECUTING_TOOLS
            logger.info(f"Round {round_index + 1}: executing {[c.name for c in calls]}")
            records, lesson = await self._execute_round(calls, lesson)
            outcome.tool_calls.extend(records)
            messages.append(assistant_tool_call_message(reply.content, records))
            messages.extend(tool_result_messages(records))

    async def _execute_round(
        self, calls: List[PendingToolCall], lesson: LessonState
    ) -> Tuple[List[ToolCall], LessonState]:
        """Run a round's calls concurrently, then fold lesson tools in request order."""
        pending = asyncio.gather(
            *(self.registry.execute(call.name, call.arguments) for call in calls),
            return_exceptions=True,
        )
        # Shielded: if the caller goes away the tools still finish, their results unused.
        results = await asyncio.shield(pending)

        results_by_id: Dict[str, Any] = {}
        for call, result in zip(calls, results):
            if isinstance(result, BaseException):
                result = {"error": f"Failed to execute {call.name}: {result}"}
            results_by_id[call.id] = result

        records: List[ToolCall] = []
        for call in calls:
            result = results_by_id[call.id]
            arguments = safe_arguments(call.arguments)
            if call.name in LESSON_TOOLS and not _is_error(result):
                try:
                    lesson = apply_lesson_tool(lesson, call.name, arguments)
                    result = {**result, "lesson": lesson_summary(lesson)}
                except ValidationError as e:
                    result = {"error": f"Invalid arguments for {call.name}: {e.error_count()} validation errors"}
            records.append(ToolCall(id=call.id, name=call.name, arguments=arguments, result=result))
        return records, lesson

    # --- Commit points ---

    def _commit_success(self, turn: PreparedTurn, outcome: TurnOutcome) -> SessionState:
        state = self.store.load(turn.session_id)
        if not state.has_message(turn.user_message_id):
            logger.warning(f"Session {turn.session_id} was cleared during the turn; discarding answer")
            return state
        assistant = create_message(
            Role.ASSISTANT,
            outcome.content,
            after=state.messages,
            tool_calls=outcome.tool_calls or None,
        )
        state = state.with_message(assistant).model_copy(update={
            "lesson_state": outcome.lesson_state or state.lesson_state,
            "processing": False,
        })
        self.store.save(state)
        logger.info(
            f"Turn done for session {turn.session_id}: {outcome.rounds} model calls, "
            f"{len(outcome.tool_calls)} tool calls"
        )
        return state

    def _release(self, turn: PreparedTurn) -> None:
        """Clear `processing` without adding an assistant message."""
        state = self.store.load(turn.session_id)
        if state.processing and state.has_message(turn.user_message_id):
            self.store.save(state.model_copy(update={"processing": False}))


def _is_error(result: Any) -> bool:
    return isinstance(result, dict) and "error" in result
