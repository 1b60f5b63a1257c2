"""
Lesson-plan state machine.

Two transitions drive a session's LessonState, both triggered by model tool calls:

* ``create_lesson_plan`` replaces the plan (no merge) and activates the first step.
* ``mark_step_complete`` completes the current step and activates the next one.

Every function here is pure: it takes a LessonState and returns a new one. Nothing
is mutated in place, so the state a turn started from is never aliased by the
state it ends with.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from lesson_tutor.context import LessonState, LessonStep
from lesson_tutor.core.enums import StepStatus

CREATE_LESSON_PLAN = "create_lesson_plan"
MARK_STEP_COMPLETE = "mark_step_complete"
LESSON_TOOLS = frozenset({CREATE_LESSON_PLAN, MARK_STEP_COMPLETE})


class StepSpec(BaseModel):
    title: str = Field(..., min_length=1)
    goal: str = Field(..., min_length=1)


class CreateLessonPlanArgs(BaseModel):
    steps: List[StepSpec] = Field(default_factory=list)


class MarkStepCompleteArgs(BaseModel):
    feedback: Optional[str] = None


def create_lesson_plan(state: LessonState, steps: Iterable[StepSpec]) -> LessonState:
    plan = [LessonStep(title=s.title, goal=s.goal) for s in steps]
    if not plan:
        # initialized never reverts once set
        return LessonState(plan=(), current_step_index=0, initialized=state.initialized)
    plan[0] = plan[0].model_copy(update={"status": StepStatus.ACTIVE})
    return LessonState(plan=tuple(plan), current_step_index=0, initialized=True)


def mark_step_complete(state: LessonState, feedback: Optional[str] = None) -> LessonState:
    index = state.current_step_index
    if index >= len(state.plan):
        return state

    plan = list(state.plan)
    plan[index] = plan[index].model_copy(
        update={"status": StepStatus.COMPLETED, "feedback": feedback}
    )
    next_index = index + 1
    if next_index < len(plan):
        plan[next_index] = plan[next_index].model_copy(update={"status": StepStatus.ACTIVE})
    return state.model_copy(update={"plan": tuple(plan), "current_step_index": next_index})


def apply_lesson_tool(state: LessonState, name: str, arguments: Mapping[str, Any]) -> LessonState:
    """Fold one lesson tool call into `state`. Unknown names leave it untouched."""
    if name == CREATE_LESSON_PLAN:
        args = CreateLessonPlanArgs.model_validate(dict(arguments))
        return create_lesson_plan(state, args.steps)
    if name == MARK_STEP_COMPLETE:
        args = MarkStepCompleteArgs.model_validate(dict(arguments))
        return mark_step_complete(state, args.feedback)
    return state


def describe_lesson(state: LessonState) -> str:
    """One-line rendering used in the system prompt and in lesson tool results."""
    if not state.initialized or not state.plan:
        return "no plan yet"
    total = len(state.plan)
    step = state.current_step
    if step is None:
        return f"all {total} steps completed"
    return f"step {state.current_step_index + 1} of {total}: {step.title}, goal: {step.goal}"


def lesson_summary(state: LessonState) -> Dict[str, Any]:
    return {
        "currentStepIndex": state.current_step_index,
        "totalSteps": len(state.plan),
        "progress": describe_lesson(state),
    }
