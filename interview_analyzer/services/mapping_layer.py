"""Pain point to feature-name associations.

Mappings carry the display name verbatim plus its normalized key; every
name-based lookup goes through the key. Ownership is derived through
pain point -> transcript -> user, there is no user column on the mapping.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from interview_analyzer.database import FeatureMappingDB, PainPointDB, TranscriptDB, transaction
from interview_analyzer.exceptions import MappingNotFoundError
from interview_analyzer.utils.feature_keys import normalize_feature_key


logger = logging.getLogger(__name__)


def user_pain_point_ids(user_id: str):
  """Subquery of pain point ids whose transcript belongs to ``user_id``."""
  return (
    select(PainPointDB.id)
    .join(TranscriptDB, PainPointDB.transcript_id == TranscriptDB.id)
    .where(TranscriptDB.user_id == user_id)
  )


class MappingLayer:
  """Create, rename and remove feature mappings."""

  def __init__(self, db: Session):
    self.db = db

  def map_pain_point(self, pain_point: PainPointDB, feature_name: str) -> FeatureMappingDB:
    """Attach a mapping to ``pain_point``; persisted with the caller's transaction."""
    mapping = FeatureMappingDB(feature_name=feature_name, feature_key=normalize_feature_key(feature_name))
    pain_point.mappings.append(mapping)
    return mapping

  def rename_mappings(self, user_id: str, old_key: str, new_name: str) -> int:
    """Point every mapping of ``user_id`` under ``old_key`` at ``new_name``.

    Runs inside the caller's transaction and returns the number of rows rewritten.
    """
    result = self.db.execute(
      update(FeatureMappingDB)
      .where(
        FeatureMappingDB.feature_key == old_key,
        FeatureMappingDB.pain_point_id.in_(user_pain_point_ids(user_id)),
      )
      .values(feature_name=new_name, feature_key=normalize_feature_key(new_name))
      .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0

  def delete_mapping(self, mapping_id: int, user_id: str) -> None:
    """Remove one association; the pain point and any feature row stay."""
    mapping = self.db.scalar(
      select(FeatureMappingDB).where(
        FeatureMappingDB.id == mapping_id,
        FeatureMappingDB.pain_point_id.in_(user_pain_point_ids(user_id)),
      )
    )
    if mapping is None:
      raise MappingNotFoundError(mapping_id, user_id)

    feature_name = mapping.feature_name
    with transaction(self.db, 'delete_mapping'):
      self.db.delete(mapping)
    logger.info('Deleted mapping %s (%s) for user %s', mapping_id, feature_name, user_id)
