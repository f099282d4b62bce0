from __future__ import annotations

import logging
from dataclasses import dataclass

from amlguard.core.config import Settings, get_settings
from amlguard.persistence.store import Store, create_store
from amlguard.services.audit import AuditQueue
from amlguard.services.audit_trail import AuditTrail
from amlguard.services.auth.sessions import SessionExpiryMonitor, SessionRegistry
from amlguard.services.registry import EntityRegistry
from amlguard.services.supervisors import SupervisorMonitor


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide owners of the store, audit queue and state holders.

    Built once by the app factory and attached to ``app.state``; nothing here
    lives at module scope.
    """

    settings: Settings
    store: Store
    audit: AuditQueue
    sessions: SessionRegistry
    session_monitor: SessionExpiryMonitor
    entities: EntityRegistry
    supervisors: SupervisorMonitor
    audit_trail: AuditTrail

    @classmethod
    def build(cls, settings: Settings | None = None, *, store: Store | None = None) -> "AppContext":
        settings = settings or get_settings()
        store = store or create_store(settings.database_url)
        sessions = SessionRegistry()
        logger.info("app_context_built backend=%s environment=%s", store.backend, settings.environment)
        return cls(
            settings=settings,
            store=store,
            audit=AuditQueue(store),
            sessions=sessions,
            session_monitor=SessionExpiryMonitor(sessions),
            entities=EntityRegistry(),
            supervisors=SupervisorMonitor(),
            audit_trail=AuditTrail(),
        )

    async def aclose(self) -> None:
        # Drain audit writes before the store goes away.
        await self.session_monitor.stop()
        await self.audit.stop()
        await self.store.close()
        logger.info("app_context_closed backend=%s", self.store.backend)
