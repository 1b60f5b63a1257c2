"""Tools for the Lesson Tutor: the registry the turn loop advertises and executes."""
import json
from typing import Any, Dict, List, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError

from lesson_tutor.context import ToolDefinition
from lesson_tutor.exceptions import ToolArgumentError, ToolExecutionError, ToolNotFoundError
from lesson_tutor.tools.builtin import BUILTIN_DEFINITIONS, BUILTIN_HANDLERS
from lesson_tutor.tools.mcp_client import CapabilityService

RawArguments = Union[str, Mapping[str, Any], None]


def normalize_arguments(raw: RawArguments) -> Dict[str, Any]:
    """Coerce model-supplied arguments (object or JSON text) into a plain dict."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolArgumentError(f"Arguments are not valid JSON: {e.msg}") from e
        if not isinstance(parsed, dict):
            raise ToolArgumentError(f"Arguments must be a JSON object, got {type(parsed).__name__}")
        return parsed
    raise ToolArgumentError(f"Unsupported arguments type: {type(raw).__name__}")


def safe_arguments(raw: RawArguments) -> Dict[str, Any]:
    """Like normalize_arguments, but unparseable input becomes an empty dict."""
    try:
        return normalize_arguments(raw)
    except ToolArgumentError:
        return {}


class ToolRegistry:
    """Built-in tools plus whatever the capability service exposes."""

    def __init__(self, capabilities: Optional[CapabilityService] = None, serpapi_key: Optional[str] = None):
        self.capabilities = capabilities
        self.serpapi_key = serpapi_key

    async def list_definitions(self) -> List[ToolDefinition]:
        definitions = list(BUILTIN_DEFINITIONS)
        if self.capabilities is None:
            return definitions
        try:
            external = await self.capabilities.list_tools()
        except Exception as e:
            logger.warning(f"Capability lookup failed, continuing with built-in tools only: {e}")
            return definitions
        builtin_names = {d.name for d in definitions}
        definitions.extend(d for d in external if d.name not in builtin_names)
        return definitions

    async def execute(self, name: str, arguments: RawArguments) -> Dict[str, Any]:
        """Run one tool. Always returns a result; failures come back as {"error": ...}."""
        try:
            args = normalize_arguments(arguments)
            handler = BUILTIN_HANDLERS.get(name)
            if handler is not None:
                return await handler(args, serpapi_key=self.serpapi_key)
            if self.capabilities is None:
                raise ToolNotFoundError(f"Tool {name} not found")
            return {"content": await self.capabilities.call_tool(name, args)}
        except ToolArgumentError as e:
            logger.warning(f"Bad arguments for tool {name}: {e}")
            return {"error": f"Invalid arguments for {name}: {e}"}
        except ValidationError as e:
            logger.warning(f"Arguments for tool {name} failed validation: {e}")
            return {"error": f"Invalid arguments for {name}: {_validation_summary(e)}"}
        except ToolNotFoundError as e:
            logger.warning(str(e))
            return {"error": str(e)}
        except ToolExecutionError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return {"error": str(e)}
        except Exception as e:
            logger.exception(f"Unexpected failure in tool {name}")
            return {"error": f"Failed to execute {name}: {e}"}


def _validation_summary(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


__all__ = ["ToolRegistry", "normalize_arguments", "safe_arguments", "CapabilityService"]
