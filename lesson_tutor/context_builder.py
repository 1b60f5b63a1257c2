"""
Builds the ordered chat-completions message list for one model call.

Layout: one system message (tutoring policy + lesson progress), the trailing
window of stored messages, then the new user turn. The same history and input
always produce the same list.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

from lesson_tutor.config import HISTORY_WINDOW
from lesson_tutor.context import Attachment, LessonState, Message, ToolCall
from lesson_tutor.core.enums import Role
from lesson_tutor.lesson_state import describe_lesson
from lesson_tutor.prompts import TUTOR_SYSTEM_PROMPT_TEMPLATE


def build_system_prompt(lesson_state: LessonState) -> str:
    return TUTOR_SYSTEM_PROMPT_TEMPLATE.format(lesson_progress=describe_lesson(lesson_state))


def dump_tool_result(result: Any) -> str:
    """Serialise a tool result for a `tool` message; key order is fixed."""
    return json.dumps(result, ensure_ascii=False, sort_keys=True, default=str)


def content_blocks(text: str, attachments: Optional[Sequence[Attachment]]) -> Any:
    """Plain string when there are no attachments, else text block + one image block each."""
    if not attachments:
        return text
    blocks: List[Dict[str, Any]] = [{"type": "text", "text": text}]
    for attachment in attachments:
        if attachment.kind == "image":
            blocks.append({"type": "image_url", "image_url": {"url": attachment.payload}})
    return blocks


def tool_call_payload(call: ToolCall) -> Dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.name,
            "arguments": json.dumps(call.arguments, ensure_ascii=False, sort_keys=True),
        },
    }


def assistant_tool_call_message(content: Optional[str], calls: Sequence[ToolCall]) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": content or None,
        "tool_calls": [tool_call_payload(c) for c in calls],
    }


def tool_result_messages(calls: Sequence[ToolCall]) -> List[Dict[str, Any]]:
    return [
        {"role": "tool", "tool_call_id": c.id, "content": dump_tool_result(c.result)}
        for c in calls
    ]


def history_to_model_messages(history: Sequence[Message]) -> List[Dict[str, Any]]:
    """Re-express stored messages in chat-completions shape, keeping tool linkage."""
    out: List[Dict[str, Any]] = []
    declared_ids = set()
    for message in history:
        role = message.role.value
        if message.role == Role.ASSISTANT and message.tool_calls:
            # A stored assistant turn that used tools expands into the call,
            # its results, and the final answer.
            out.append(assistant_tool_call_message(None, message.tool_calls))
            out.extend(tool_result_messages(message.tool_calls))
            declared_ids.update(c.id for c in message.tool_calls)
            if message.content:
                out.append({"role": role, "content": message.content})
        elif message.role == Role.TOOL:
            # A tool result cut off from its call by the window would be rejected.
            if message.tool_call_id in declared_ids:
                out.append({
                    "role": role,
                    "tool_call_id": message.tool_call_id,
                    "content": message.content,
                })
        else:
            out.append({"role": role, "content": content_blocks(message.content, message.attachments)})
    return out


def build_model_messages(
    lesson_state: LessonState,
    history: Sequence[Message],
    text: str,
    attachments: Optional[Sequence[Attachment]] = None,
    window: int = HISTORY_WINDOW,
) -> List[Dict[str, Any]]:
    recent = list(history[-window:]) if window > 0 else []
    messages: List[Dict[str, Any]] = [{"role": "system", "content": build_system_prompt(lesson_state)}]
    messages.extend(history_to_model_messages(recent))
    messages.append({"role": "user", "content": content_blocks(text, attachments)})
    return messages
