"""Feature registry API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from interview_analyzer.config import ServerConfig
from interview_analyzer.database import get_db
from interview_analyzer.exceptions import AnalysisValidationError
from interview_analyzer.models import (
  CountResponse,
  FeatureDetailsResponse,
  FeatureListResponse,
  FeatureNamesResponse,
  FeatureResponse,
  FeaturesSave,
  FeatureStatus,
  FeaturesWithCountsResponse,
  FeatureUpdate,
  MessageResponse,
  UserScoped,
)
from interview_analyzer.routers.transcripts import body_user_id, get_lifecycle_service, query_user_id
from interview_analyzer.services.feature_registry import FeatureRegistry


def get_feature_registry(db: Session = Depends(get_db)) -> FeatureRegistry:
  return FeatureRegistry(db)


def status_filter(status: Optional[str] = Query(None)):
  """``?status=`` -> list of statuses, ``None`` meaning all of them."""
  try:
    return FeatureStatus.parse_filter(status)
  except ValueError as e:
    raise AnalysisValidationError(f'Unknown status filter: {status}') from e


router = APIRouter()


@router.get('', response_model=FeatureListResponse)
async def list_features(
  user_id: str = Depends(query_user_id),
  statuses=Depends(status_filter),
  registry=Depends(get_feature_registry),
):
  """List features; active only unless ``status`` asks for more."""
  features = registry.list_features(user_id, statuses)
  return FeatureListResponse(features=features, count=len(features))


@router.get('/names', response_model=FeatureNamesResponse)
async def list_feature_names(user_id: str = Depends(query_user_id), registry=Depends(get_feature_registry)):
  """Active feature names, as matched by the analysis step."""
  return FeatureNamesResponse(features=registry.list_feature_names(user_id))


@router.get('/with-counts', response_model=FeaturesWithCountsResponse)
async def list_features_with_counts(
  user_id: str = Depends(query_user_id),
  status: Optional[str] = Query(None),
  registry=Depends(get_feature_registry),
):
  """Every feature with the number of distinct transcripts mentioning it."""
  statuses = status_filter(status) if status else None
  return FeaturesWithCountsResponse(features=registry.list_with_counts(user_id, statuses))


@router.post('', response_model=CountResponse)
async def save_features(payload: FeaturesSave, registry=Depends(get_feature_registry)):
  """Replace the user's hand-written features; suggestions are kept."""
  count = registry.save_features(ServerConfig.resolve_user_id(payload.user_id), payload.features)
  return CountResponse(message='Features saved successfully', count=count)


@router.delete('', response_model=CountResponse)
async def delete_all_features(user_id: str = Depends(query_user_id), registry=Depends(get_feature_registry)):
  """Delete every feature row of the user."""
  count = registry.delete_all_features(user_id)
  return CountResponse(message='Features deleted successfully', count=count)


@router.get('/details/{feature_name}', response_model=FeatureDetailsResponse)
async def get_feature_details(
  feature_name: str, user_id: str = Depends(query_user_id), service=Depends(get_lifecycle_service)
):
  """Feature attributes and its pain points grouped by transcript."""
  return FeatureDetailsResponse(feature=service.get_feature_details(feature_name, user_id))


@router.delete('/mappings/{mapping_id}', response_model=MessageResponse)
async def delete_mapping(mapping_id: int, user_id: str = Depends(query_user_id), service=Depends(get_lifecycle_service)):
  """Remove one pain point to feature association."""
  service.delete_mapping(mapping_id, user_id)
  return MessageResponse(message='Pain point removed from feature')


@router.put('/{feature_id}', response_model=FeatureResponse)
async def update_feature(feature_id: int, payload: FeatureUpdate, registry=Depends(get_feature_registry)):
  """Rename or redescribe a feature; mappings follow a rename."""
  feature = registry.update_feature(
    feature_id,
    ServerConfig.resolve_user_id(payload.user_id),
    payload.feature_name,
    payload.description,
  )
  return FeatureResponse(message='Feature updated successfully', feature=feature)


@router.post('/{feature_id}/archive', response_model=FeatureResponse)
async def archive_feature(
  feature_id: int,
  payload: Optional[UserScoped] = None,
  user_id: str = Depends(query_user_id),
  service=Depends(get_lifecycle_service),
):
  """Archive a pending or active feature."""
  feature = service.archive_feature(feature_id, body_user_id(payload, user_id))
  return FeatureResponse(message='Feature archived', feature=feature)


@router.delete('/{feature_id}', response_model=MessageResponse)
async def delete_feature(feature_id: int, user_id: str = Depends(query_user_id), service=Depends(get_lifecycle_service)):
  """Delete a feature row; its pain points and mappings stay."""
  service.delete_feature(feature_id, user_id)
  return MessageResponse(message='Feature deleted successfully')
