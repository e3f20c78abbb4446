"""Database setup and ORM models for the interview analyzer.

The models describe the head schema produced by the Alembic chain in
``migrations/versions``. The legacy two-table suggestion design only exists
inside the migrations and ``schema_store``.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import (
  Boolean,
  CheckConstraint,
  Column,
  DateTime,
  ForeignKey,
  Index,
  Integer,
  String,
  Text,
  text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.sql import func

from interview_analyzer.db_config import create_engine_for_backend, detect_database_backend
from interview_analyzer.exceptions import OperationFailedError

logger = logging.getLogger(__name__)

DATABASE_BACKEND = detect_database_backend()

# Pooled engine: one connection per request, returned on session close
engine = create_engine_for_backend(DATABASE_BACKEND)

SessionLocal = sessionmaker(
  autocommit=False,
  autoflush=False,
  bind=engine,
  expire_on_commit=False,  # Prevent lazy loading issues
)

Base = declarative_base()

PENDING_ONLY = text("status = 'pending'")
VALID_STATUS = "status IN ('pending', 'active', 'archived')"


class TranscriptDB(Base):
  """Database model for analyzed interview transcripts."""

  __tablename__ = 'transcripts'
  __table_args__ = (Index('idx_transcripts_user_id', 'user_id'),)

  id = Column(Integer, primary_key=True, autoincrement=True)
  user_id = Column(Text, nullable=False, default='default')
  transcript_text = Column(Text, nullable=False)
  summary = Column(Text, nullable=True)
  created_at = Column(DateTime, default=func.now())

  # Relationships
  pain_points = relationship(
    'PainPointDB', back_populates='transcript', cascade='all, delete-orphan', passive_deletes=True
  )
  feature_summaries = relationship(
    'TranscriptFeatureSummaryDB', back_populates='transcript', cascade='all, delete-orphan', passive_deletes=True
  )


class PainPointDB(Base):
  """Database model for a customer quote and the problem it evidences."""

  __tablename__ = 'pain_points'
  __table_args__ = (Index('idx_pain_points_transcript_id', 'transcript_id'),)

  id = Column(Integer, primary_key=True, autoincrement=True)
  transcript_id = Column(Integer, ForeignKey('transcripts.id', ondelete='CASCADE'))
  pain_point = Column(Text, nullable=False)
  quote = Column(Text, nullable=False)
  created_at = Column(DateTime, default=func.now())

  # Relationships
  transcript = relationship('TranscriptDB', back_populates='pain_points')
  mappings = relationship(
    'FeatureMappingDB', back_populates='pain_point', cascade='all, delete-orphan', passive_deletes=True
  )


class FeatureMappingDB(Base):
  """Database model for a pain point to feature-name association.

  There is no foreign key to features: mappings exist for names that have
  no feature row yet. Joins go through ``feature_key``.
  """

  __tablename__ = 'feature_mappings'
  __table_args__ = (
    Index('idx_feature_mappings_pain_point_id', 'pain_point_id'),
    Index('idx_feature_mappings_feature_key', 'feature_key'),
  )

  id = Column(Integer, primary_key=True, autoincrement=True)
  pain_point_id = Column(Integer, ForeignKey('pain_points.id', ondelete='CASCADE'))
  feature_name = Column(Text, nullable=False)
  feature_key = Column(Text, nullable=False)
  created_at = Column(DateTime, default=func.now())

  # Relationships
  pain_point = relationship('PainPointDB', back_populates='mappings')


class FeatureDB(Base):
  """Database model for user-authored features and AI suggestions alike."""

  __tablename__ = 'features'
  __table_args__ = (
    Index('idx_features_user_id', 'user_id'),
    # One pending suggestion per user and normalized name; target of the writer's upsert
    Index(
      'uq_features_pending_key',
      'user_id',
      'feature_key',
      unique=True,
      sqlite_where=PENDING_ONLY,
      postgresql_where=PENDING_ONLY,
    ),
    CheckConstraint(VALID_STATUS, name='ck_features_status'),
  )

  id = Column(Integer, primary_key=True, autoincrement=True)
  user_id = Column(Text, nullable=False, default='default')
  feature_name = Column(Text, nullable=False)
  feature_key = Column(Text, nullable=False)
  description = Column(Text, nullable=True)
  is_suggestion = Column(Boolean, default=False)
  status = Column(String, nullable=False, default='active', server_default=text("'active'"))
  transcript_id = Column(Integer, ForeignKey('transcripts.id', ondelete='SET NULL'), nullable=True)
  pain_points_count = Column(Integer, nullable=True)
  created_at = Column(DateTime, default=func.now())
  updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class TranscriptFeatureSummaryDB(Base):
  """Database model for the AI summary one analysis produced per feature."""

  __tablename__ = 'transcript_feature_summaries'
  __table_args__ = (Index('idx_transcript_feature_summaries_transcript_id', 'transcript_id'),)

  id = Column(Integer, primary_key=True, autoincrement=True)
  transcript_id = Column(Integer, ForeignKey('transcripts.id', ondelete='CASCADE'))
  feature_name = Column(Text, nullable=False)
  ai_summary = Column(Text, nullable=False)
  is_suggestion = Column(Boolean, nullable=False, default=False, server_default=text('false'))
  created_at = Column(DateTime, default=func.now())

  # Relationships
  transcript = relationship('TranscriptDB', back_populates='feature_summaries')


def get_db():
  """Get database session with proper error handling and connection management."""
  db = None
  try:
    db = SessionLocal()
    yield db
  except Exception:
    if db:
      db.rollback()
    raise
  finally:
    if db:
      try:
        db.close()
      except Exception as e:
        # Log the error but don't raise it to avoid masking the original error
        logger.warning(f'Error closing database session: {e}')


@contextmanager
def transaction(db: Session, operation: str):
  """Commit the work done inside the block once, or roll all of it back.

  Database errors surface as ``OperationFailedError``; the cause is logged here.
  Domain errors raised inside the block roll back and propagate unchanged.
  """
  try:
    yield db
    db.commit()
  except SQLAlchemyError as e:
    db.rollback()
    logger.exception('%s failed; transaction rolled back', operation)
    raise OperationFailedError(operation) from e
  except Exception:
    db.rollback()
    raise
