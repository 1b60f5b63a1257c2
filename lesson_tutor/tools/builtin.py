"""
Built-in tools: lesson-plan control, weather lookup and web search.

Lesson tools only validate and acknowledge here; TurnOrchestrator folds them into
the session's LessonState in the order the model requested them.
"""
import random
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from lesson_tutor.context import ToolDefinition
from lesson_tutor.exceptions import ToolExecutionError
from lesson_tutor.lesson_state import (
    CREATE_LESSON_PLAN,
    MARK_STEP_COMPLETE,
    CreateLessonPlanArgs,
    MarkStepCompleteArgs,
)
from lesson_tutor.telemetry import log_tool
from lesson_tutor.tools.web import fetch_web_content, perform_web_search

WEATHER_CONDITIONS = ["Sunny", "Cloudy", "Rainy", "Snowy"]


def _tool_spec(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description,
        parameter_schema={"type": "object", "properties": properties, "required": required},
    )


BUILTIN_DEFINITIONS: List[ToolDefinition] = [
    _tool_spec(
        CREATE_LESSON_PLAN,
        "Create (or replace) the lesson plan for the student's current problem or topic. "
        "Call this before teaching a new problem.",
        {
            "steps": {
                "type": "array",
                "description": "Ordered lesson steps",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Short step title"},
                        "goal": {"type": "string", "description": "What the student should achieve in this step"},
                    },
                    "required": ["title", "goal"],
                },
            }
        },
        ["steps"],
    ),
    _tool_spec(
        MARK_STEP_COMPLETE,
        "Mark the current lesson step as completed once the student has achieved its goal.",
        {"feedback": {"type": "string", "description": "Brief feedback on how the student did"}},
        [],
    ),
    _tool_spec(
        "get_weather",
        "Get current weather information for a location",
        {"location": {"type": "string", "description": "The city or location name"}},
        ["location"],
    ),
    _tool_spec(
        "web_search",
        "Search the web using Google or fetch content from a specific URL",
        {
            "query": {"type": "string", "description": "Search query for Google search"},
            "url": {"type": "string", "description": "Specific URL to fetch content from (alternative to search)"},
            "num_results": {
                "type": "number",
                "description": "Number of search results to return (default: 5, max: 10)",
                "default": 5,
            },
        },
        [],
    ),
]


class WeatherArgs(BaseModel):
    location: str = Field(..., min_length=1)


class WebSearchArgs(BaseModel):
    query: Optional[str] = None
    url: Optional[str] = None
    num_results: int = 5


@log_tool
async def create_lesson_plan(args: Dict[str, Any], **_) -> Dict[str, Any]:
    parsed = CreateLessonPlanArgs.model_validate(args)
    return {"acknowledged": True, "stepCount": len(parsed.steps)}


@log_tool
async def mark_step_complete(args: Dict[str, Any], **_) -> Dict[str, Any]:
    MarkStepCompleteArgs.model_validate(args)
    return {"acknowledged": True}


@log_tool
async def get_weather(args: Dict[str, Any], **_) -> Dict[str, Any]:
    parsed = WeatherArgs.model_validate(args)
    return {
        "location": parsed.location,
        "temperature": random.randint(-10, 29),
        "condition": random.choice(WEATHER_CONDITIONS),
        "humidity": random.randint(0, 99),
    }


@log_tool
async def web_search(args: Dict[str, Any], *, serpapi_key: Optional[str] = None, **_) -> Dict[str, Any]:
    parsed = WebSearchArgs.model_validate(args)
    if parsed.url:
        return {"content": await fetch_web_content(parsed.url)}
    if parsed.query:
        return {"content": await perform_web_search(parsed.query, parsed.num_results, api_key=serpapi_key)}
    raise ToolExecutionError("Either query or url parameter is required")


BUILTIN_HANDLERS = {
    CREATE_LESSON_PLAN: create_lesson_plan,
    MARK_STEP_COMPLETE: mark_step_complete,
    "get_weather": get_weather,
    "web_search": web_search,
}
