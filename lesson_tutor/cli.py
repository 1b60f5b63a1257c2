#!/usr/bin/env python
"""
Interactive CLI for the Lesson Tutor.
Type your messages and watch the answer stream in; enter 'exit' to quit,
'clear' to start over.
"""
import argparse
import asyncio
from uuid import uuid4

from lesson_tutor.dependencies import build_components
from lesson_tutor.exceptions import TutorError
from lesson_tutor.lesson_state import describe_lesson
from lesson_tutor.session_manager import InMemorySessionStore


async def main(model=None):
    components = build_components(store=InMemorySessionStore())
    orchestrator = components.orchestrator
    session_id = str(uuid4())
    if model:
        orchestrator.set_model(session_id, model)

    print("=== Lesson Tutor Interactive CLI ===")
    print("Type your message and press enter. Type 'exit' to quit.")
    try:
        while True:
            text = await asyncio.to_thread(input, "> ")
            command = text.strip().lower()
            if command in {"exit", "quit"}:
                print("Session ended.")
                break
            if command == "clear":
                orchestrator.clear(session_id)
                print("(session cleared)")
                continue
            try:
                turn = orchestrator.begin_turn(session_id, text)
            except TutorError as e:
                print(f"! {e}")
                continue
            async for fragment in orchestrator.stream_turn(turn):
                print(fragment, end="", flush=True)
            print()
            lesson = orchestrator.get_state(session_id).lesson_state
            print(f"[lesson: {describe_lesson(lesson)}]")
    finally:
        await components.aclose()


if __name__ == "__main__":
    cli_parser = argparse.ArgumentParser(description="Chat with the Lesson Tutor in a terminal.")
    cli_parser.add_argument("--model", default=None, help="Model to use for this session")
    args = cli_parser.parse_args()
    asyncio.run(main(args.model))
