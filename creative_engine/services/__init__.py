# Services package - business logic and external integrations
from creative_engine.services.storage import StorageService
from creative_engine.services.catalog import CatalogService
from creative_engine.services.product_reference import ProductReferenceResolver
from creative_engine.services.prompt_composer import compose_prompt
from creative_engine.services.candidates import CandidateStore
from creative_engine.services.qa_scorer import QAScorer
from creative_engine.services.status import StatusPublisher
from creative_engine.services.intake import IntakeService

__all__ = [
    "StorageService",
    "CatalogService",
    "ProductReferenceResolver",
    "compose_prompt",
    "CandidateStore",
    "QAScorer",
    "StatusPublisher",
    "IntakeService",
]
