import io
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["USE_LOCAL_STORAGE"] = "true"
os.environ["USE_GCS"] = "false"
os.environ["QA_VISION_ENABLED"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["FAL_API_KEY"] = ""

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from creative_engine.core.database import init_db
from creative_engine.models.catalog import BrandContext, Product, ProductImage
from creative_engine.models.job import GenerationJob, PipelineStage, PipelineStageRecord
from creative_engine.services.providers.base import (
    AttemptHandle,
    GeneratedAsset,
    PollResult,
    PollState,
    ProviderAdapter,
)
from creative_engine.services.qa_scorer import QAResult, threshold_for
from creative_engine.services.storage import StorageService


def png_bytes(color=(200, 30, 30), size=(64, 64)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeProvider(ProviderAdapter):
    """Scripted provider: finishes after `polls_until_done` checks, or never."""

    def __init__(
        self,
        provider_id="gemini-image",
        content_type="image",
        polls_until_done=1,
        never_finish=False,
        fail_with=None,
        mime_type="image/png",
    ):
        self.provider_id = provider_id
        self.content_type = content_type
        self.polls_until_done = polls_until_done
        self.never_finish = never_finish
        self.fail_with = fail_with
        self.mime_type = mime_type
        self.calls = {"submit": 0, "poll": 0, "fetch": 0}
        self.requests = []
        self._polls = {}

    def submit(self, request):
        self.calls["submit"] += 1
        self.requests.append(request)
        external_id = f"{self.provider_id}-{self.calls['submit']}"
        self._polls[external_id] = 0
        return AttemptHandle(provider_id=self.provider_id, external_id=external_id, model="fake-model")

    def poll_status(self, handle):
        self.calls["poll"] += 1
        if self.fail_with:
            return PollResult(state=PollState.FAILED, error=self.fail_with)
        self._polls[handle.external_id] += 1
        if self.never_finish or self._polls[handle.external_id] < self.polls_until_done:
            return PollResult(state=PollState.PENDING)
        return PollResult(state=PollState.SUCCEEDED, result_location=handle.external_id)

    def fetch_result(self, handle, location):
        self.calls["fetch"] += 1
        if self.mime_type.startswith("image/"):
            data = png_bytes((10 * self.calls["fetch"] % 255, 120, 80))
        else:
            data = f"video-{location}".encode()
        return GeneratedAsset(data=data, mime_type=self.mime_type, model="fake-model")


class ScriptedScorer:
    """Hands out scores in order and records them through the candidate store."""

    def __init__(self, scores):
        self.scores = list(scores)
        self.scored_variants = []

    def score_candidate(self, candidate, store, storage, category=None, **kwargs):
        score = self.scores.pop(0) if self.scores else 0.0
        threshold = threshold_for(category)
        self.scored_variants.append(candidate.variant_index)
        stored_score, stored_passed = store.record_score(
            candidate.id, score, score >= threshold, {"scripted": True}
        )
        return QAResult(score=stored_score, passed=stored_passed, threshold=threshold)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return StorageService(base_path=str(tmp_path / "storage"))


@pytest.fixture
def make_png():
    return png_bytes


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def scripted_scorer():
    return ScriptedScorer


@pytest.fixture
def add_product(db, storage):
    """Insert a catalog product, optionally with a stored image."""

    def _add(product_id, name, tenant_id="tenant-1", with_image=True, color=(200, 30, 30)):
        product = Product(id=product_id, tenant_id=tenant_id, name=name, status="active")
        db.add(product)
        if with_image:
            url = storage.put(f"catalog/{product_id}.png", png_bytes(color, (120, 200)), "image/png")
            db.add(ProductImage(product_id=product_id, url=url, is_primary=True, sort_order=0))
        db.commit()
        return product

    return _add


@pytest.fixture
def add_brand(db):
    def _add(tenant_id="tenant-1", **fields):
        db.add(BrandContext(tenant_id=tenant_id, **fields))
        db.commit()

    return _add


@pytest.fixture
def create_job(db):
    """Insert a queued job directly, bypassing intake."""

    def _create(
        job_id="gen_test000001",
        providers=("gemini-image",),
        content_type="image",
        references=(),
        is_kit_scenario=False,
        settings=None,
        tenant_id="tenant-1",
    ):
        job_settings = {
            "content_type": content_type,
            "aspect_ratio": "1:1",
            "variation_count": 2,
            "qa_enabled": True,
            "fallback_enabled": True,
            "category": "default",
        }
        job_settings.update(settings or {})
        job = GenerationJob(
            id=job_id,
            tenant_id=tenant_id,
            content_type=content_type,
            providers=list(providers),
            settings=job_settings,
            brief="Launch campaign",
            references=[dict(ref) for ref in references],
            is_kit_scenario=is_kit_scenario,
            variant_count=job_settings["variation_count"],
            status=PipelineStage.QUEUED.value,
        )
        db.add(job)
        db.add(PipelineStageRecord(job_id=job_id, stage=PipelineStage.QUEUED.value, attempt=0))
        db.commit()
        return job_id

    return _create
