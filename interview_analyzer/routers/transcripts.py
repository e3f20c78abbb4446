"""Transcript and suggestion lifecycle API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from interview_analyzer.config import ServerConfig
from interview_analyzer.database import get_db
from interview_analyzer.models import (
  FeatureResponse,
  MessageResponse,
  SuggestionHistoryResponse,
  TranscriptCreate,
  TranscriptDetailResponse,
  TranscriptListResponse,
  TranscriptSaved,
  UserScoped,
)
from interview_analyzer.services.lifecycle_service import LifecycleService
from interview_analyzer.services.transcript_service import TranscriptService
from interview_analyzer.services.transcript_writer import TranscriptWriter


def get_transcript_service(db: Session = Depends(get_db)) -> TranscriptService:
  return TranscriptService(db)


def get_lifecycle_service(db: Session = Depends(get_db)) -> LifecycleService:
  return LifecycleService(db)


def query_user_id(user_id: Optional[str] = Query(None, alias='userId')) -> str:
  return ServerConfig.resolve_user_id(user_id)


def body_user_id(payload: Optional[UserScoped], fallback: str) -> str:
  if payload is not None and payload.user_id:
    return ServerConfig.resolve_user_id(payload.user_id)
  return fallback


router = APIRouter()


@router.get('', response_model=TranscriptListResponse)
async def list_transcripts(user_id: str = Depends(query_user_id), service=Depends(get_transcript_service)):
  """List the user's transcripts, newest first."""
  return TranscriptListResponse(transcripts=service.list_transcripts(user_id))


@router.post('', response_model=TranscriptSaved)
async def save_transcript(payload: TranscriptCreate, db: Session = Depends(get_db)):
  """Persist one analysis result."""
  user_id = ServerConfig.resolve_user_id(payload.user_id)
  transcript_id = TranscriptWriter(db).save_transcript(user_id, payload)
  return TranscriptSaved(transcript_id=transcript_id)


@router.get('/suggestions/history/{feature_name}', response_model=SuggestionHistoryResponse)
async def get_suggestion_history(
  feature_name: str, user_id: str = Depends(query_user_id), service=Depends(get_lifecycle_service)
):
  """Transcripts in which a suggestion (or feature) came up."""
  return SuggestionHistoryResponse(history=service.get_suggestion_history(feature_name, user_id))


@router.post('/suggestions/{feature_id}/approve', response_model=FeatureResponse)
async def approve_suggestion(
  feature_id: int,
  payload: Optional[UserScoped] = None,
  user_id: str = Depends(query_user_id),
  service=Depends(get_lifecycle_service),
):
  """Approve a pending suggestion, making it an active feature."""
  feature = service.approve_suggestion(feature_id, body_user_id(payload, user_id))
  return FeatureResponse(message='Feature suggestion approved and added to features list', feature=feature)


@router.post('/suggestions/{feature_id}/ignore', response_model=FeatureResponse)
async def ignore_suggestion(
  feature_id: int,
  payload: Optional[UserScoped] = None,
  user_id: str = Depends(query_user_id),
  service=Depends(get_lifecycle_service),
):
  """Dismiss a pending suggestion."""
  feature = service.ignore_suggestion(feature_id, body_user_id(payload, user_id))
  return FeatureResponse(message='Feature suggestion ignored', feature=feature)


@router.get('/{transcript_id}', response_model=TranscriptDetailResponse)
async def get_transcript(
  transcript_id: int,
  with_history: bool = Query(False, alias='withHistory'),
  user_id: str = Depends(query_user_id),
  service=Depends(get_transcript_service),
):
  """Rebuild the stored analysis of one transcript."""
  return TranscriptDetailResponse(transcript=service.get_transcript(transcript_id, user_id, with_history))


@router.delete('/{transcript_id}', response_model=MessageResponse)
async def delete_transcript(
  transcript_id: int, user_id: str = Depends(query_user_id), service=Depends(get_transcript_service)
):
  """Delete a transcript together with its pain points and mappings."""
  service.delete_transcript(transcript_id, user_id)
  return MessageResponse(message='Transcript deleted successfully')
