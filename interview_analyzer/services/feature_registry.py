"""Feature registry: user-authored features and AI suggestions in one table."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.orm import Session

from interview_analyzer.database import FeatureDB, FeatureMappingDB, PainPointDB, TranscriptDB, transaction
from interview_analyzer.exceptions import (
  AnalysisValidationError,
  FeatureNameConflictError,
  FeatureNotFoundError,
)
from interview_analyzer.models import Feature, FeatureStatus, FeatureWithCount
from interview_analyzer.services.mapping_layer import MappingLayer
from interview_analyzer.utils.feature_keys import clean_feature_name, normalize_feature_key


logger = logging.getLogger(__name__)

LIVE_STATUSES = (FeatureStatus.PENDING.value, FeatureStatus.ACTIVE.value)


def feature_from_db(row: FeatureDB) -> Feature:
  return Feature(
    id=row.id,
    user_id=row.user_id,
    feature_name=row.feature_name,
    description=row.description,
    status=FeatureStatus(row.status or FeatureStatus.ACTIVE),
    is_suggestion=bool(row.is_suggestion),
    transcript_id=row.transcript_id,
    pain_points_count=row.pain_points_count,
    created_at=row.created_at,
    updated_at=row.updated_at,
  )


def _status_values(statuses: Optional[Iterable[FeatureStatus]]) -> Optional[List[str]]:
  if statuses is None:
    return None
  return [FeatureStatus(s).value for s in statuses]


class FeatureRegistry:
  """CRUD and status-aware queries over ``features``.

  Every operation is scoped to one user. Reads never commit; writes commit
  once and roll back the whole unit on a database error.
  """

  def __init__(self, db: Session):
    self.db = db
    self.mappings = MappingLayer(db)

  def get_owned(self, feature_id: int, user_id: str) -> FeatureDB:
    row = self.db.scalar(select(FeatureDB).where(FeatureDB.id == feature_id, FeatureDB.user_id == user_id))
    if row is None:
      raise FeatureNotFoundError(feature_id, user_id)
    return row

  # Reads
  def list_features(
    self, user_id: str, statuses: Optional[Iterable[FeatureStatus]] = (FeatureStatus.ACTIVE,)
  ) -> List[Feature]:
    """Features for ``user_id`` ordered by id.

    Only active features by default, so unreviewed suggestions and archived
    rows stay out of product lists. ``statuses=None`` returns every status.
    """
    stmt = select(FeatureDB).where(FeatureDB.user_id == user_id)
    values = _status_values(statuses)
    if values is not None:
      stmt = stmt.where(FeatureDB.status.in_(values))
    return [feature_from_db(row) for row in self.db.scalars(stmt.order_by(FeatureDB.id))]

  def list_feature_names(self, user_id: str) -> List[str]:
    """Active feature names, the vocabulary handed to the analysis step."""
    return list(
      self.db.scalars(
        select(FeatureDB.feature_name)
        .where(FeatureDB.user_id == user_id, FeatureDB.status == FeatureStatus.ACTIVE.value)
        .order_by(FeatureDB.id)
      )
    )

  def list_with_counts(
    self, user_id: str, statuses: Optional[Iterable[FeatureStatus]] = None
  ) -> List[FeatureWithCount]:
    """Features with the number of distinct transcripts that mention each one.

    A transcript with several quotes under the same feature counts once.
    """
    counts = (
      select(
        FeatureMappingDB.feature_key.label('feature_key'),
        func.count(distinct(PainPointDB.transcript_id)).label('transcripts'),
      )
      .select_from(FeatureMappingDB)
      .join(PainPointDB, FeatureMappingDB.pain_point_id == PainPointDB.id)
      .join(TranscriptDB, PainPointDB.transcript_id == TranscriptDB.id)
      .where(TranscriptDB.user_id == user_id)
      .group_by(FeatureMappingDB.feature_key)
      .subquery()
    )
    pain_point_count = func.coalesce(counts.c.transcripts, 0).label('pain_point_count')

    stmt = (
      select(FeatureDB, pain_point_count)
      .outerjoin(counts, counts.c.feature_key == FeatureDB.feature_key)
      .where(FeatureDB.user_id == user_id)
    )
    values = _status_values(statuses)
    if values is not None:
      stmt = stmt.where(FeatureDB.status.in_(values))
    stmt = stmt.order_by(pain_point_count.desc(), FeatureDB.id.asc())

    return [
      FeatureWithCount(**feature_from_db(row).model_dump(), pain_point_count=count)
      for row, count in self.db.execute(stmt)
    ]

  # Writes
  def save_features(self, user_id: str, feature_names: List[str]) -> int:
    """Replace the user's hand-written feature list.

    AI-suggested rows survive untouched. Names are trimmed, blanks dropped
    and duplicates (by normalized key) collapsed; a name whose key already
    belongs to an approved suggestion is not written twice. A pending
    suggestion whose name the user now writes by hand is archived, so the
    name is live only once.
    """
    approved_keys = set(
      self.db.scalars(
        select(FeatureDB.feature_key).where(
          FeatureDB.user_id == user_id,
          FeatureDB.is_suggestion.is_(True),
          FeatureDB.status == FeatureStatus.ACTIVE.value,
        )
      )
    )

    rows = []
    seen = set(approved_keys)
    for raw in feature_names:
      name = clean_feature_name(raw)
      key = normalize_feature_key(name)
      if not key or key in seen:
        continue
      seen.add(key)
      rows.append(
        FeatureDB(
          user_id=user_id,
          feature_name=name,
          feature_key=key,
          status=FeatureStatus.ACTIVE.value,
          is_suggestion=False,
        )
      )

    with transaction(self.db, 'save_features'):
      self.db.execute(
        delete(FeatureDB).where(
          FeatureDB.user_id == user_id,
          or_(FeatureDB.is_suggestion.is_(False), FeatureDB.is_suggestion.is_(None)),
        )
      )
      self.db.add_all(rows)
      archived = 0
      if rows:
        archived = self.db.execute(
          update(FeatureDB)
          .where(
            FeatureDB.user_id == user_id,
            FeatureDB.status == FeatureStatus.PENDING.value,
            FeatureDB.feature_key.in_([row.feature_key for row in rows]),
          )
          .values(status=FeatureStatus.ARCHIVED.value, updated_at=func.now())
          .execution_options(synchronize_session=False)
        ).rowcount or 0

    logger.info('Saved %d features for user %s', len(rows), user_id)
    if archived:
      logger.info('Archived %d pending suggestions now written by hand for user %s', archived, user_id)
    return len(rows)

  def update_feature(
    self, feature_id: int, user_id: str, feature_name: str, description: Optional[str] = None
  ) -> Feature:
    """Rename/redescribe a feature; a rename carries the user's mappings along."""
    name = clean_feature_name(feature_name)
    if not name:
      raise AnalysisValidationError('Feature name is required')

    row = self.get_owned(feature_id, user_id)
    old_name, old_key = row.feature_name, row.feature_key
    new_key = normalize_feature_key(name)

    if new_key != old_key:
      clash = self.db.scalar(
        select(FeatureDB.id).where(
          FeatureDB.user_id == user_id,
          FeatureDB.feature_key == new_key,
          FeatureDB.status.in_(LIVE_STATUSES),
          FeatureDB.id != feature_id,
        )
      )
      if clash is not None:
        raise FeatureNameConflictError(name, user_id)

    renamed = 0
    with transaction(self.db, 'update_feature'):
      row.feature_name = name
      row.feature_key = new_key
      row.description = description
      if name != old_name:
        renamed = self.mappings.rename_mappings(user_id, old_key, name)
    self.db.refresh(row)

    if name != old_name:
      logger.info("Renamed feature %s '%s' -> '%s' (%d mappings)", feature_id, old_name, name, renamed)
    return feature_from_db(row)

  def delete_feature(self, feature_id: int, user_id: str) -> None:
    """Hard-delete the feature row; its pain points and mappings stay."""
    row = self.get_owned(feature_id, user_id)
    name = row.feature_name
    with transaction(self.db, 'delete_feature'):
      self.db.delete(row)
    logger.info("Deleted feature %s ('%s') for user %s", feature_id, name, user_id)

  def delete_all_features(self, user_id: str) -> int:
    with transaction(self.db, 'delete_all_features'):
      deleted = self.db.execute(delete(FeatureDB).where(FeatureDB.user_id == user_id)).rowcount or 0
    logger.info('Deleted %d features for user %s', deleted, user_id)
    return deleted
