"""
Credential Lookup
Resolves provider secrets from an ordered list of sources.
The platform override table wins over environment settings.
"""

import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from creative_engine.core.config import settings

logger = logging.getLogger(__name__)

CredentialSource = Tuple[str, Callable[[str], Optional[str]]]


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}***{value[-2:]}"


def _lookup_override(db: Session, key: str) -> Optional[str]:
    from creative_engine.models.catalog import PlatformCredential

    row = (
        db.query(PlatformCredential)
        .filter(PlatformCredential.key == key, PlatformCredential.is_active == True)  # noqa: E712
        .first()
    )
    return row.value.strip() if row and row.value and row.value.strip() else None


class CredentialResolver:
    """
    Ordered credential lookup.

    Sources are tried in order; the first non-empty value wins. Callers only see the
    value, never which source produced it.

    The override table is read through `db` when a session is given, otherwise through a
    short-lived session from `session_factory` (the application session factory by default).
    """

    def __init__(
        self,
        sources: Optional[List[CredentialSource]] = None,
        db: Optional[Session] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        if sources is None:
            sources = [
                ("platform_credentials", self._database_source(db, session_factory)),
                ("settings", self._settings_source),
            ]
        self.sources = sources

    @staticmethod
    def _database_source(
        db: Optional[Session], session_factory: Optional[Callable[[], Session]]
    ) -> Callable[[str], Optional[str]]:
        if db is not None:
            return lambda key: _lookup_override(db, key)

        def lookup(key: str) -> Optional[str]:
            factory = session_factory
            if factory is None:
                from creative_engine.core.database import SessionLocal
                factory = SessionLocal
            session = factory()
            try:
                return _lookup_override(session, key)
            finally:
                session.close()

        return lookup

    @staticmethod
    def _settings_source(key: str) -> Optional[str]:
        value = getattr(settings, key, None)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def get_secret(self, key: str) -> Optional[str]:
        for name, lookup in self.sources:
            value = lookup(key)
            if value:
                logger.debug(f"[Credentials] {key} resolved from {name} ({_mask(value)})")
                return value
        logger.warning(f"[Credentials] {key} not configured in any source")
        return None


def get_secret(key: str, db: Optional[Session] = None) -> Optional[str]:
    """Resolve a secret (convenience function)."""
    return CredentialResolver(db=db).get_secret(key)


__all__ = ["CredentialResolver", "get_secret"]
