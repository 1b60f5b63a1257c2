# lesson_tutor/config.py
import json
import logging
import os
from typing import Any, Dict, List

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

log = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def _load_mcp_servers(raw: str | None) -> List[Dict[str, str]]:
    """Parse MCP_SERVERS, a JSON list of {"name": ..., "sse_url": ...} objects."""
    if not raw:
        return []
    try:
        servers: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        log.error("MCP_SERVERS is not valid JSON, no external tools will load: %s", e)
        return []
    if not isinstance(servers, list):
        log.error("MCP_SERVERS must be a JSON list, got %s", type(servers).__name__)
        return []
    valid = []
    for entry in servers:
        if isinstance(entry, dict) and entry.get("name") and entry.get("sse_url"):
            valid.append({"name": str(entry["name"]), "sse_url": str(entry["sse_url"])})
        else:
            log.warning("Skipping malformed MCP server entry: %r", entry)
    return valid


# --- Model provider ---
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL") or None
DEFAULT_MODEL: str = os.getenv("DEFAULT_MODEL", "gpt-4o-mini")
MAX_TOKENS: int = _int_env("MAX_TOKENS", 16000)

# --- Turn loop ---
HISTORY_WINDOW: int = _int_env("HISTORY_WINDOW", 12)     # stored messages sent per turn
MAX_TOOL_ROUNDS: int = _int_env("MAX_TOOL_ROUNDS", 5)    # rounds that may offer tools

# --- Tools ---
SERPAPI_KEY: str | None = os.getenv("SERPAPI_KEY")
MCP_SERVERS: List[Dict[str, str]] = _load_mcp_servers(os.getenv("MCP_SERVERS"))

# --- Persistence ---
SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY: str | None = os.getenv("SUPABASE_SERVICE_KEY")

# --- Web ---
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")

API_RESPONSES: Dict[str, str] = {
    "MISSING_MESSAGE": "Message required",
    "INVALID_MODEL": "Invalid model",
    "SESSION_BUSY": "Session is busy processing another message",
    "PROCESSING_ERROR": "Failed to process message",
    "NOT_FOUND": "Not Found",
    "INTERNAL_ERROR": "Internal Server Error",
}

STREAM_ERROR_NOTICE = "Sorry, I encountered an error processing your request."
EMPTY_REPLY_FALLBACK = "I apologize, but I encountered an issue processing your request."
