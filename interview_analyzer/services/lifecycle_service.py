"""Status transitions and read-side aggregation for features and suggestions."""

import logging
from typing import Dict, List

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session, aliased

from interview_analyzer.database import FeatureDB, FeatureMappingDB, PainPointDB, TranscriptDB, transaction
from interview_analyzer.exceptions import (
  FeatureNameConflictError,
  FeatureNotFoundError,
  FeatureStatusConflictError,
)
from interview_analyzer.models import (
  Feature,
  FeatureDetails,
  FeaturePainPoint,
  FeatureStatus,
  SuggestionHistory,
  SuggestionOccurrence,
  TranscriptPainPoints,
)
from interview_analyzer.services.feature_registry import FeatureRegistry, feature_from_db
from interview_analyzer.services.mapping_layer import MappingLayer
from interview_analyzer.services.pain_point_ledger import PainPointLedger
from interview_analyzer.utils.feature_keys import normalize_feature_key


logger = logging.getLogger(__name__)

# Preferred row when several share a normalized name
_STATUS_RANK = case(
  (FeatureDB.status == FeatureStatus.ACTIVE.value, 0),
  (FeatureDB.status == FeatureStatus.PENDING.value, 1),
  else_=2,
)


def transcript_label(transcript_id: int, summary) -> str:
  return summary or f'Transcript #{transcript_id}'


class LifecycleService:
  """Approve, ignore, archive and delete, plus the views built on mappings."""

  def __init__(self, db: Session):
    self.db = db
    self.registry = FeatureRegistry(db)
    self.ledger = PainPointLedger(db)
    self.mappings = MappingLayer(db)

  def _transition(self, feature_id: int, user_id: str, target: FeatureStatus, operation: str) -> Feature:
    row = self.registry.get_owned(feature_id, user_id)
    current = FeatureStatus(row.status or FeatureStatus.ACTIVE)

    if current == target:
      return feature_from_db(row)
    if not current.can_transition_to(target):
      raise FeatureStatusConflictError(feature_id, current, target)

    with transaction(self.db, operation):
      row.status = target.value
    self.db.refresh(row)
    logger.info('Feature %s for user %s: %s -> %s', feature_id, user_id, current, target)
    return feature_from_db(row)

  def approve_suggestion(self, feature_id: int, user_id: str) -> Feature:
    """Move a pending suggestion to active.

    The update only matches a pending row whose name no other active feature
    of the user holds, so two concurrent approvals cannot both succeed and a
    name never ends up active twice. Approving anything that is not pending
    is a status conflict; approving a name that is already active is a name
    conflict.
    """
    other = aliased(FeatureDB)
    name_taken = (
      select(other.id)
      .where(
        other.user_id == FeatureDB.user_id,
        other.feature_key == FeatureDB.feature_key,
        other.status == FeatureStatus.ACTIVE.value,
        other.id != FeatureDB.id,
      )
      .correlate(FeatureDB)
      .exists()
    )

    with transaction(self.db, 'approve_suggestion'):
      result = self.db.execute(
        update(FeatureDB)
        .where(
          FeatureDB.id == feature_id,
          FeatureDB.user_id == user_id,
          FeatureDB.status == FeatureStatus.PENDING.value,
          ~name_taken,
        )
        .values(status=FeatureStatus.ACTIVE.value, updated_at=func.now())
        .execution_options(synchronize_session=False)
      )
      approved = result.rowcount

    row = self.registry.get_owned(feature_id, user_id)
    self.db.refresh(row)
    if approved == 0:
      if row.status == FeatureStatus.PENDING.value:
        raise FeatureNameConflictError(row.feature_name, user_id)
      raise FeatureStatusConflictError(feature_id, row.status, FeatureStatus.ACTIVE)

    logger.info("Approved suggestion %s ('%s') for user %s", feature_id, row.feature_name, user_id)
    return feature_from_db(row)

  def ignore_suggestion(self, feature_id: int, user_id: str) -> Feature:
    """Dismiss a pending suggestion. Active features are archived, not ignored."""
    row = self.registry.get_owned(feature_id, user_id)
    if row.status == FeatureStatus.ACTIVE.value:
      raise FeatureStatusConflictError(feature_id, row.status, FeatureStatus.ARCHIVED)
    return self._transition(feature_id, user_id, FeatureStatus.ARCHIVED, 'ignore_suggestion')

  def archive_feature(self, feature_id: int, user_id: str) -> Feature:
    return self._transition(feature_id, user_id, FeatureStatus.ARCHIVED, 'archive_feature')

  def delete_feature(self, feature_id: int, user_id: str) -> None:
    self.registry.delete_feature(feature_id, user_id)

  def delete_mapping(self, mapping_id: int, user_id: str) -> None:
    self.mappings.delete_mapping(mapping_id, user_id)

  def get_feature_details(self, feature_name: str, user_id: str) -> FeatureDetails:
    """Feature attributes plus its pain points grouped by transcript, newest first."""
    key = normalize_feature_key(feature_name)
    row = self.db.scalar(
      select(FeatureDB)
      .where(FeatureDB.user_id == user_id, FeatureDB.feature_key == key)
      .order_by(_STATUS_RANK, FeatureDB.id.desc())
      .limit(1)
    )
    if row is None:
      raise FeatureNotFoundError(feature_name, user_id)

    groups: Dict[int, TranscriptPainPoints] = {}
    for item in self.ledger.list_for_feature(row.feature_name, user_id):
      group = groups.get(item.transcript_id)
      if group is None:
        group = groups[item.transcript_id] = TranscriptPainPoints(
          transcript_id=item.transcript_id,
          transcript_name=transcript_label(item.transcript_id, item.transcript_summary),
        )
      group.pain_points.append(
        FeaturePainPoint(
          pain_point_id=item.pain_point_id,
          pain_point=item.pain_point,
          quote=item.quote,
          mapping_id=item.mapping_id,
        )
      )

    return FeatureDetails(**feature_from_db(row).model_dump(), transcripts=list(groups.values()))

  def get_suggestion_history(self, feature_name: str, user_id: str) -> SuggestionHistory:
    """Every transcript that contributed quotes under ``feature_name``, oldest first."""
    key = normalize_feature_key(feature_name)
    features: List[Feature] = [
      feature_from_db(row)
      for row in self.db.scalars(
        select(FeatureDB).where(FeatureDB.user_id == user_id, FeatureDB.feature_key == key).order_by(FeatureDB.id)
      )
    ]

    stmt = (
      select(
        TranscriptDB.id,
        TranscriptDB.summary,
        TranscriptDB.created_at,
        func.count(PainPointDB.id).label('quote_count'),
      )
      .select_from(FeatureMappingDB)
      .join(PainPointDB, FeatureMappingDB.pain_point_id == PainPointDB.id)
      .join(TranscriptDB, PainPointDB.transcript_id == TranscriptDB.id)
      .where(FeatureMappingDB.feature_key == key, TranscriptDB.user_id == user_id)
      .group_by(TranscriptDB.id, TranscriptDB.summary, TranscriptDB.created_at)
      .order_by(TranscriptDB.created_at.asc(), TranscriptDB.id.asc())
    )
    occurrences = [
      SuggestionOccurrence(
        transcript_id=r.id,
        transcript_name=transcript_label(r.id, r.summary),
        created_at=r.created_at,
        quote_count=r.quote_count,
      )
      for r in self.db.execute(stmt)
    ]

    if not features and not occurrences:
      raise FeatureNotFoundError(feature_name, user_id)

    return SuggestionHistory(
      feature_name=features[0].feature_name if features else feature_name.strip(),
      features=features,
      occurrences=occurrences,
      transcript_count=len(occurrences),
      first_seen_at=occurrences[0].created_at if occurrences else None,
      last_seen_at=occurrences[-1].created_at if occurrences else None,
    )
