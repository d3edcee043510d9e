"""
Candidate Model
One generated variant of a job, with provenance and QA outcome.
"""

from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Integer, Float, ForeignKey, JSON, Boolean, UniqueConstraint
)
from sqlalchemy.orm import relationship

from creative_engine.core.database import Base


class Candidate(Base):
    """
    Generated candidate asset.

    Rows are append-only: a retry produces a new batch with fresh variant indexes.
    The QA fields are written once.
    """

    __tablename__ = "generation_candidates"
    __table_args__ = (
        UniqueConstraint("job_id", "variant_index", name="uq_candidate_job_variant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, ForeignKey("generation_jobs.id"), nullable=False, index=True)
    attempt = Column(Integer, nullable=False, default=1)
    variant_index = Column(Integer, nullable=False)

    # Provenance
    provider = Column(String, nullable=False)
    model = Column(String, nullable=True)

    # Stored asset
    storage_path = Column(String, nullable=False)
    storage_url = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    byte_size = Column(Integer, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    # QA
    qa_score = Column(Float, nullable=True)
    qa_passed = Column(Boolean, nullable=True)
    qa_details = Column(JSON, nullable=True)
    scored_at = Column(DateTime, nullable=True)

    is_fallback = Column(Boolean, default=False)
    is_final = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("GenerationJob", back_populates="candidates")
