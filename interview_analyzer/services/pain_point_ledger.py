"""Append-only storage of customer quotes and the problems they evidence."""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from interview_analyzer.database import FeatureMappingDB, PainPointDB, TranscriptDB
from interview_analyzer.exceptions import TranscriptNotFoundError
from interview_analyzer.models import MappedPainPoint, PainPoint
from interview_analyzer.utils.feature_keys import normalize_feature_key


logger = logging.getLogger(__name__)


class PainPointLedger:
  """Read and append pain points. Pain points are never updated."""

  def __init__(self, db: Session):
    self.db = db

  def record(self, transcript: TranscriptDB, pain_point: str, quote: str) -> PainPointDB:
    """Append a pain point to ``transcript``; persisted with the caller's transaction."""
    row = PainPointDB(pain_point=pain_point, quote=quote)
    transcript.pain_points.append(row)
    return row

  def list_for_transcript(self, transcript_id: int, user_id: str) -> List[PainPoint]:
    owned = self.db.scalar(
      select(TranscriptDB.id).where(TranscriptDB.id == transcript_id, TranscriptDB.user_id == user_id)
    )
    if owned is None:
      raise TranscriptNotFoundError(transcript_id, user_id)

    rows = self.db.scalars(
      select(PainPointDB).where(PainPointDB.transcript_id == transcript_id).order_by(PainPointDB.id)
    ).all()
    return [
      PainPoint(
        id=row.id,
        transcript_id=row.transcript_id,
        pain_point=row.pain_point,
        quote=row.quote,
        created_at=row.created_at,
      )
      for row in rows
    ]

  def list_for_feature(self, feature_name: str, user_id: str) -> List[MappedPainPoint]:
    """All pain points mapped to ``feature_name`` for the user, newest transcript first.

    Matching is on the normalized key, so "Slack  integration" finds quotes
    mapped as "Slack Integration".
    """
    stmt = (
      select(
        PainPointDB.id.label('pain_point_id'),
        PainPointDB.pain_point,
        PainPointDB.quote,
        FeatureMappingDB.id.label('mapping_id'),
        FeatureMappingDB.feature_name,
        TranscriptDB.id.label('transcript_id'),
        TranscriptDB.summary.label('transcript_summary'),
        TranscriptDB.created_at.label('transcript_created_at'),
      )
      .select_from(FeatureMappingDB)
      .join(PainPointDB, FeatureMappingDB.pain_point_id == PainPointDB.id)
      .join(TranscriptDB, PainPointDB.transcript_id == TranscriptDB.id)
      .where(
        FeatureMappingDB.feature_key == normalize_feature_key(feature_name),
        TranscriptDB.user_id == user_id,
      )
      .order_by(TranscriptDB.created_at.desc(), TranscriptDB.id.desc(), PainPointDB.id.asc())
    )
    return [MappedPainPoint.model_validate(dict(row._mapping)) for row in self.db.execute(stmt)]
