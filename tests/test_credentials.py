from creative_engine.core.config import settings
from creative_engine.core.credentials import CredentialResolver, get_secret
from creative_engine.models.catalog import PlatformCredential


def test_sources_are_tried_in_order() -> None:
    seen = []

    def first(key):
        seen.append(("first", key))
        return None

    def second(key):
        seen.append(("second", key))
        return "from-second"

    resolver = CredentialResolver(sources=[("first", first), ("second", second)])
    assert resolver.get_secret("FAL_API_KEY") == "from-second"
    assert seen == [("first", "FAL_API_KEY"), ("second", "FAL_API_KEY")]


def test_override_table_wins_over_settings(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "env-key")
    db.add(PlatformCredential(key="GEMINI_API_KEY", value=" db-key ", is_active=True))
    db.commit()

    assert get_secret("GEMINI_API_KEY", db=db) == "db-key"


def test_inactive_override_is_ignored(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "env-key")
    db.add(PlatformCredential(key="GEMINI_API_KEY", value="db-key", is_active=False))
    db.commit()

    assert get_secret("GEMINI_API_KEY", db=db) == "env-key"


def test_missing_secret_is_none(session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "FAL_API_KEY", "")
    assert CredentialResolver(session_factory=session_factory).get_secret("FAL_API_KEY") is None


def test_secret_values_are_not_logged(session_factory, caplog, monkeypatch) -> None:
    monkeypatch.setattr(settings, "FAL_API_KEY", "super-secret-value")
    with caplog.at_level("DEBUG", logger="creative_engine.core.credentials"):
        CredentialResolver(session_factory=session_factory).get_secret("FAL_API_KEY")
    assert "super-secret-value" not in caplog.text
    assert "resolved from settings" in caplog.text


def test_default_resolver_reads_override_table_without_a_session(session_factory, monkeypatch) -> None:
    monkeypatch.setattr(settings, "FAL_API_KEY", "env-key")
    db = session_factory()
    try:
        db.add(PlatformCredential(key="FAL_API_KEY", value="db-key", is_active=True))
        db.commit()
    finally:
        db.close()

    assert CredentialResolver(session_factory=session_factory).get_secret("FAL_API_KEY") == "db-key"


def test_worker_pipeline_uses_override_table(session_factory, monkeypatch) -> None:
    from creative_engine.workers.job_queue import JobQueue
    from creative_engine.workers.tasks import build_pipeline

    monkeypatch.setattr(settings, "FAL_API_KEY", "")
    db = session_factory()
    try:
        db.add(PlatformCredential(key="FAL_API_KEY", value="db-key", is_active=True))
        db.commit()
    finally:
        db.close()

    pipeline = build_pipeline(JobQueue(session_factory), session_factory=session_factory)

    assert pipeline.registry.credentials.get_secret("FAL_API_KEY") == "db-key"
    assert pipeline.registry.get("fal-veo3-t2v").api_key == "db-key"
