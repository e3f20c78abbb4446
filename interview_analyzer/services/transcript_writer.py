"""Transactional writer for one AI analysis of an interview transcript.

One call persists the transcript, a pain point and mapping per quote, the AI
summary per feature, and folds every new feature suggestion into the user's
pending suggestions:

* a name that already has an active feature absorbs the quotes, no suggestion;
* otherwise an upsert on ``uq_features_pending_key`` either creates a pending
  row (``pain_points_count = 1``) or bumps the existing one by one;
* a normalized name is counted at most once per call, however often the
  analysis repeats it.

The whole call is one transaction; a failure anywhere leaves nothing behind.
"""

import logging
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from interview_analyzer.database import (
  PENDING_ONLY,
  FeatureDB,
  TranscriptDB,
  TranscriptFeatureSummaryDB,
  transaction,
)
from interview_analyzer.exceptions import AnalysisValidationError, OperationFailedError
from interview_analyzer.models import AnalyzedFeature, FeatureStatus, TranscriptCreate
from interview_analyzer.services.mapping_layer import MappingLayer
from interview_analyzer.services.pain_point_ledger import PainPointLedger
from interview_analyzer.utils.feature_keys import normalize_feature_key


logger = logging.getLogger(__name__)

_INSERTS = {
  'postgresql': postgresql.insert,
  'sqlite': sqlite.insert,
}


def dialect_insert(dialect: str):
  """The ``insert`` construct with ON CONFLICT support for ``dialect``."""
  insert = _INSERTS.get(dialect)
  if insert is None:
    logger.error('Suggestion upsert needs ON CONFLICT support, which the %s backend lacks', dialect)
    raise OperationFailedError('save_transcript')
  return insert


def validate_analysis(payload: TranscriptCreate) -> None:
  """Reject an analysis before any transaction opens."""
  if not payload.transcript_text or not payload.transcript_text.strip():
    raise AnalysisValidationError('Transcript text is required')
  for entry in [*payload.features, *payload.new_feature_suggestions]:
    if not normalize_feature_key(entry.feature_name):
      raise AnalysisValidationError('Every feature needs a featureName')


class TranscriptWriter:
  """Write an analysis result and run suggestion dedup in one transaction."""

  def __init__(self, db: Session):
    self.db = db
    self.ledger = PainPointLedger(db)
    self.mappings = MappingLayer(db)

  def save_transcript(self, user_id: str, payload: TranscriptCreate) -> int:
    """Persist ``payload`` for ``user_id`` and return the new transcript id."""
    validate_analysis(payload)

    with transaction(self.db, 'save_transcript'):
      transcript = TranscriptDB(
        user_id=user_id,
        transcript_text=payload.transcript_text,
        summary=payload.summary,
      )
      self.db.add(transcript)
      self.db.flush()

      for feature in payload.features:
        self._record_feature(transcript, feature, feature.feature_name, is_suggestion=False)

      # normalized key -> mapping target already resolved in this call
      resolved: Dict[str, str] = {}
      created = bumped = absorbed = 0
      for suggestion in payload.new_feature_suggestions:
        key = normalize_feature_key(suggestion.feature_name)
        target = resolved.get(key)
        if target is None:
          target = self._active_feature_name(user_id, key)
          if target is not None:
            absorbed += 1
          else:
            target, is_new = self._upsert_pending(user_id, key, suggestion, transcript.id)
            if is_new:
              created += 1
            else:
              bumped += 1
          resolved[key] = target
        self._record_feature(transcript, suggestion, target, is_suggestion=True)

      self.db.flush()
      transcript_id = transcript.id

    logger.info(
      'Saved transcript %s for user %s: %d pain points, suggestions created=%d bumped=%d absorbed=%d',
      transcript_id,
      user_id,
      sum(len(f.quotes) for f in [*payload.features, *payload.new_feature_suggestions]),
      created,
      bumped,
      absorbed,
    )
    return transcript_id

  def _record_feature(
    self, transcript: TranscriptDB, entry: AnalyzedFeature, target_name: str, is_suggestion: bool
  ) -> None:
    transcript.feature_summaries.append(
      TranscriptFeatureSummaryDB(
        feature_name=target_name,
        ai_summary=entry.ai_summary or '',
        is_suggestion=is_suggestion,
      )
    )
    for quote in entry.quotes:
      pain_point = self.ledger.record(transcript, quote.pain_point, quote.quote)
      self.mappings.map_pain_point(pain_point, target_name)

  def _active_feature_name(self, user_id: str, key: str) -> Optional[str]:
    return self.db.scalar(
      select(FeatureDB.feature_name)
      .where(
        FeatureDB.user_id == user_id,
        FeatureDB.feature_key == key,
        FeatureDB.status == FeatureStatus.ACTIVE.value,
      )
      .order_by(FeatureDB.id)
      .limit(1)
    )

  def _upsert_pending(self, user_id: str, key: str, suggestion: AnalyzedFeature, transcript_id: int):
    """Create or bump the pending suggestion for ``key``.

    Returns ``(feature_name, created)``; the name is the existing row's when
    bumped, so later analyses keep mapping onto the first spelling.
    """
    insert = dialect_insert(self.db.get_bind().dialect.name)

    table = FeatureDB.__table__
    stmt = insert(table).values(
      user_id=user_id,
      feature_name=suggestion.feature_name.strip(),
      feature_key=key,
      description=suggestion.ai_summary or None,
      status=FeatureStatus.PENDING.value,
      is_suggestion=True,
      transcript_id=transcript_id,
      pain_points_count=1,
    )
    stmt = stmt.on_conflict_do_update(
      index_elements=[table.c.user_id, table.c.feature_key],
      index_where=PENDING_ONLY,
      set_={
        'pain_points_count': func.coalesce(table.c.pain_points_count, 1) + 1,
        'updated_at': func.now(),
      },
    ).returning(table.c.id, table.c.feature_name, table.c.transcript_id)

    row = self.db.execute(stmt).one()
    created = row.transcript_id == transcript_id
    if created:
      logger.info("Created pending suggestion %s '%s' for user %s", row.id, row.feature_name, user_id)
    else:
      logger.info("Bumped pending suggestion %s '%s' for user %s", row.id, row.feature_name, user_id)
    return row.feature_name, created
