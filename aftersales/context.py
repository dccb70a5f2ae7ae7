"""
Run Context
===========
Everything one process run needs, built once and passed explicitly to the
components that use it.
"""
from dataclasses import dataclass

import httpx

from .client import AccessCodeClient
from .config import Settings, load_settings
from .security import ToolSecurityGate
from .sessions import SessionStore
from .tools import ToolRegistry


@dataclass
class AppContext:
    settings: Settings
    client: AccessCodeClient
    gate: ToolSecurityGate
    registry: ToolRegistry
    store: SessionStore

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> "AppContext":
        """
        Args:
            settings: Defaults to load_settings().
            http:     Shared HTTP client for the API client and the probe tool.
        """
        settings = settings or load_settings()
        client   = AccessCodeClient(settings, http=http)
        gate     = ToolSecurityGate.from_settings(settings)
        return cls(
            settings=settings,
            client=client,
            gate=gate,
            registry=ToolRegistry(settings, client, gate, http=http),
            store=SessionStore(settings.session_store_path),
        )

    async def aclose(self) -> None:
        await self.registry.aclose()
        await self.client.aclose()
