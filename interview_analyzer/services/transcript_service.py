"""Read and delete stored transcripts."""

import logging
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from interview_analyzer.database import (
  FeatureDB,
  FeatureMappingDB,
  PainPointDB,
  TranscriptDB,
  TranscriptFeatureSummaryDB,
  transaction,
)
from interview_analyzer.exceptions import TranscriptNotFoundError
from interview_analyzer.models import (
  AnalysisQuote,
  FeatureStatus,
  TranscriptDetail,
  TranscriptFeature,
  TranscriptListItem,
)
from interview_analyzer.utils.feature_keys import normalize_feature_key


logger = logging.getLogger(__name__)


class TranscriptService:
  """Transcript reads rebuild the analysis from summaries, pain points and mappings."""

  def __init__(self, db: Session):
    self.db = db

  def _get_owned(self, transcript_id: int, user_id: str) -> TranscriptDB:
    row = self.db.scalar(
      select(TranscriptDB).where(TranscriptDB.id == transcript_id, TranscriptDB.user_id == user_id)
    )
    if row is None:
      raise TranscriptNotFoundError(transcript_id, user_id)
    return row

  def list_transcripts(self, user_id: str) -> List[TranscriptListItem]:
    rows = self.db.scalars(
      select(TranscriptDB)
      .where(TranscriptDB.user_id == user_id)
      .order_by(TranscriptDB.created_at.desc(), TranscriptDB.id.desc())
    )
    return [TranscriptListItem(id=r.id, summary=r.summary, created_at=r.created_at) for r in rows]

  def get_transcript(self, transcript_id: int, user_id: str, with_history: bool = False) -> TranscriptDetail:
    """Rebuild the stored analysis of one transcript.

    With ``with_history`` each suggestion also reports the current state of
    its feature row (id, status and recurrence count).
    """
    transcript = self._get_owned(transcript_id, user_id)

    quotes_by_key: Dict[str, List[AnalysisQuote]] = {}
    names_by_key: Dict[str, str] = {}
    rows = self.db.execute(
      select(FeatureMappingDB.feature_name, FeatureMappingDB.feature_key, PainPointDB.quote, PainPointDB.pain_point)
      .select_from(PainPointDB)
      .join(FeatureMappingDB, FeatureMappingDB.pain_point_id == PainPointDB.id)
      .where(PainPointDB.transcript_id == transcript_id)
      .order_by(PainPointDB.id, FeatureMappingDB.id)
    )
    for row in rows:
      quotes_by_key.setdefault(row.feature_key, []).append(
        AnalysisQuote(quote=row.quote, pain_point=row.pain_point)
      )
      names_by_key.setdefault(row.feature_key, row.feature_name)

    summaries = self.db.scalars(
      select(TranscriptFeatureSummaryDB)
      .where(TranscriptFeatureSummaryDB.transcript_id == transcript_id)
      .order_by(TranscriptFeatureSummaryDB.id)
    ).all()

    features: List[TranscriptFeature] = []
    suggestions: List[TranscriptFeature] = []
    listed = set()
    for summary in summaries:
      key = normalize_feature_key(summary.feature_name)
      if key in listed:
        continue
      listed.add(key)
      entry = TranscriptFeature(
        feature_name=summary.feature_name,
        ai_summary=summary.ai_summary,
        quotes=quotes_by_key.get(key, []),
      )
      if summary.is_suggestion:
        if with_history:
          self._attach_history(entry, key, user_id)
        suggestions.append(entry)
      else:
        features.append(entry)

    # Mappings without a stored summary (e.g. migrated legacy suggestions)
    for key, quotes in quotes_by_key.items():
      if key not in listed:
        features.append(TranscriptFeature(feature_name=names_by_key[key], quotes=quotes))

    return TranscriptDetail(
      id=transcript.id,
      transcript_text=transcript.transcript_text,
      summary=transcript.summary,
      created_at=transcript.created_at,
      features=features,
      new_feature_suggestions=suggestions,
    )

  def _attach_history(self, entry: TranscriptFeature, key: str, user_id: str) -> None:
    row = self.db.scalar(
      select(FeatureDB)
      .where(FeatureDB.user_id == user_id, FeatureDB.feature_key == key)
      .order_by(
        (FeatureDB.status == FeatureStatus.PENDING.value).desc(),
        (FeatureDB.status == FeatureStatus.ACTIVE.value).desc(),
        FeatureDB.id.desc(),
      )
      .limit(1)
    )
    if row is not None:
      entry.feature_id = row.id
      entry.status = FeatureStatus(row.status)
      entry.pain_points_count = row.pain_points_count

  def delete_transcript(self, transcript_id: int, user_id: str) -> None:
    """Delete a transcript with its pain points, mappings and summaries.

    Feature rows survive; those that originated here lose their origin link.
    """
    transcript = self._get_owned(transcript_id, user_id)
    with transaction(self.db, 'delete_transcript'):
      self.db.delete(transcript)
    logger.info('Deleted transcript %s for user %s', transcript_id, user_id)
