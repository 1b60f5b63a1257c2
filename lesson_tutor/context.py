from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lesson_tutor.config import DEFAULT_MODEL
from lesson_tutor.core.enums import Role, StepStatus


class _Frozen(BaseModel):
    """Immutable value objects serialised with camelCase keys."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class Attachment(_Frozen):
    kind: Literal["image"] = Field(
        "image", validation_alias=AliasChoices("kind", "type")
    )
    # Base64 data URL. Clients send it as `data` or `url`.
    payload: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("payload", "data", "url")
    )


class ToolCall(_Frozen):
    """A tool invocation requested by the model, with its result once executed."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None


class Message(_Frozen):
    id: str
    role: Role
    content: str = ""
    timestamp: int
    attachments: Optional[Tuple[Attachment, ...]] = None
    tool_calls: Optional[Tuple[ToolCall, ...]] = None
    tool_call_id: Optional[str] = None


class LessonStep(_Frozen):
    title: str
    goal: str
    status: StepStatus = StepStatus.PENDING
    feedback: Optional[str] = None


class LessonState(_Frozen):
    plan: Tuple[LessonStep, ...] = ()
    current_step_index: int = 0
    initialized: bool = False

    @property
    def current_step(self) -> Optional[LessonStep]:
        if 0 <= self.current_step_index < len(self.plan):
            return self.plan[self.current_step_index]
        return None


class SessionState(_Frozen):
    """Everything persisted for one session. Replaced wholesale on every commit."""
    session_id: str
    messages: Tuple[Message, ...] = ()
    lesson_state: LessonState = Field(default_factory=LessonState)
    model: str = DEFAULT_MODEL
    processing: bool = False

    @classmethod
    def initial(cls, session_id: str) -> "SessionState":
        return cls(session_id=session_id)

    def with_message(self, message: Message) -> "SessionState":
        return self.model_copy(update={"messages": self.messages + (message,)})

    def has_message(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self.messages)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ToolDefinition(_Frozen):
    name: str
    description: str
    parameter_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_openai(self) -> Dict[str, Any]:
        """Render as an OpenAI chat-completions function spec."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema,
            },
        }


def create_message(
    role: Role,
    content: str,
    *,
    after: Tuple[Message, ...] = (),
    attachments: Optional[List[Attachment]] = None,
    tool_calls: Optional[List[ToolCall]] = None,
    tool_call_id: Optional[str] = None,
) -> Message:
    """Build a new message whose timestamp never precedes the last one in `after`."""
    now = int(time.time() * 1000)
    if after:
        now = max(now, after[-1].timestamp)
    return Message(
        id=str(uuid.uuid4()),
        role=role,
        content=content,
        timestamp=now,
        attachments=tuple(attachments) if attachments else None,
        tool_calls=tuple(tool_calls) if tool_calls else None,
        tool_call_id=tool_call_id,
    )
