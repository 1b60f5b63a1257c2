# lesson_tutor/dependencies.py
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, status
from supabase import create_client

from lesson_tutor.config import (
    HISTORY_WINDOW,
    MAX_TOOL_ROUNDS,
    MCP_SERVERS,
    SERPAPI_KEY,
    SUPABASE_SERVICE_KEY,
    SUPABASE_URL,
)
from lesson_tutor.core.llm import LLMClient
from lesson_tutor.orchestrator import TurnOrchestrator
from lesson_tutor.session_manager import InMemorySessionStore, SessionStore, SupabaseSessionStore
from lesson_tutor.tools import ToolRegistry
from lesson_tutor.tools.mcp_client import CapabilityService, MCPManager

log = logging.getLogger(__name__)


@dataclass
class Components:
    store: SessionStore
    llm: LLMClient
    registry: ToolRegistry
    orchestrator: TurnOrchestrator
    capabilities: Optional[CapabilityService] = None

    async def aclose(self) -> None:
        if self.capabilities is not None:
            try:
                await self.capabilities.aclose()
            except Exception as exc:
                log.warning("Failed to close capability service on shutdown: %s", exc)
        try:
            await self.llm.aclose()
        except Exception as exc:
            log.warning("Failed to close model client on shutdown: %s", exc)


def build_session_store() -> SessionStore:
    """Supabase when SUPABASE_URL and SUPABASE_SERVICE_KEY are set, in-memory otherwise."""
    if SUPABASE_URL and SUPABASE_SERVICE_KEY:
        client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
        log.info("Using Supabase session store.")
        return SupabaseSessionStore(client)
    log.warning("SUPABASE_URL/SUPABASE_SERVICE_KEY not set; sessions are kept in memory.")
    return InMemorySessionStore()


def build_components(store: Optional[SessionStore] = None) -> Components:
    store = store or build_session_store()
    capabilities = MCPManager(MCP_SERVERS) if MCP_SERVERS else None
    llm = LLMClient()
    registry = ToolRegistry(capabilities=capabilities, serpapi_key=SERPAPI_KEY)
    orchestrator = TurnOrchestrator(
        store, registry, llm, history_window=HISTORY_WINDOW, max_tool_rounds=MAX_TOOL_ROUNDS
    )
    return Components(store=store, llm=llm, registry=registry, orchestrator=orchestrator, capabilities=capabilities)


def _components(request: Request) -> Components:
    components = getattr(request.app.state, "components", None)
    if components is None:
        log.error("Request served before application components were initialised.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tutor service is not available.",
        )
    return components


def get_orchestrator(request: Request) -> TurnOrchestrator:
    """FastAPI dependency returning the shared TurnOrchestrator."""
    return _components(request).orchestrator
