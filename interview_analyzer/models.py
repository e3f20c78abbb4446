"""Data models for the interview analyzer application."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FeatureStatus(StrEnum):
    """Lifecycle of a feature row; moves forward only."""

    PENDING = "pending"  # AI suggestion awaiting review
    ACTIVE = "active"  # Tracked product feature
    ARCHIVED = "archived"  # Ignored or retired, terminal

    def can_transition_to(self, target: "FeatureStatus") -> bool:
        """Whether ``self -> target`` is a legal move (no-op moves excluded)."""
        return target in _ALLOWED_TRANSITIONS[self]

    @classmethod
    def parse_filter(cls, value: str | None) -> list["FeatureStatus"] | None:
        """Parse a ``status`` query value.

        None means the default (active only); ``all`` means every status;
        otherwise a comma-separated list of status names.
        """
        if value is None or not value.strip():
            return [cls.ACTIVE]
        if value.strip().lower() == "all":
            return None
        return [cls(part.strip().lower()) for part in value.split(",") if part.strip()]


_ALLOWED_TRANSITIONS: dict[FeatureStatus, frozenset[FeatureStatus]] = {
    FeatureStatus.PENDING: frozenset({FeatureStatus.ACTIVE, FeatureStatus.ARCHIVED}),
    FeatureStatus.ACTIVE: frozenset({FeatureStatus.ARCHIVED}),
    FeatureStatus.ARCHIVED: frozenset(),
}


class CamelModel(BaseModel):
    """Wire models use the camelCase names of the analysis payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Writer input
class AnalysisQuote(CamelModel):
    quote: str
    pain_point: str


class AnalyzedFeature(CamelModel):
    feature_name: str
    ai_summary: str = ""
    quotes: list[AnalysisQuote] = Field(default_factory=list)


class TranscriptCreate(CamelModel):
    """One analysis result as handed over by the AI-analysis step."""

    user_id: str | None = None
    transcript_text: str
    summary: str | None = None
    features: list[AnalyzedFeature]
    new_feature_suggestions: list[AnalyzedFeature] = Field(default_factory=list)


class TranscriptSaved(CamelModel):
    success: bool = True
    transcript_id: int


# Feature registry
class Feature(CamelModel):
    id: int
    user_id: str
    feature_name: str
    description: str | None = None
    status: FeatureStatus = FeatureStatus.ACTIVE
    is_suggestion: bool = False
    transcript_id: int | None = None  # Origin transcript of an AI suggestion
    pain_points_count: int | None = None  # Recurrence counter, meaningful while pending
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FeatureWithCount(Feature):
    pain_point_count: int = 0  # Distinct transcripts mapped to this feature


class FeaturesSave(CamelModel):
    user_id: str | None = None
    features: list[str]


class FeatureUpdate(CamelModel):
    user_id: str | None = None
    feature_name: str
    description: str | None = None


class UserScoped(CamelModel):
    user_id: str | None = None


# Pain points
class PainPoint(CamelModel):
    id: int
    transcript_id: int
    pain_point: str
    quote: str
    created_at: datetime | None = None


class MappedPainPoint(CamelModel):
    """A pain point reached through a feature mapping, with its transcript."""

    pain_point_id: int
    pain_point: str
    quote: str
    mapping_id: int
    feature_name: str
    transcript_id: int
    transcript_summary: str | None = None
    transcript_created_at: datetime | None = None


class FeaturePainPoint(CamelModel):
    pain_point_id: int
    pain_point: str
    quote: str
    mapping_id: int


class TranscriptPainPoints(CamelModel):
    transcript_id: int
    transcript_name: str
    pain_points: list[FeaturePainPoint] = Field(default_factory=list)


class FeatureDetails(Feature):
    transcripts: list[TranscriptPainPoints] = Field(default_factory=list)


class SuggestionOccurrence(CamelModel):
    transcript_id: int
    transcript_name: str
    created_at: datetime | None = None
    quote_count: int = 0


class SuggestionHistory(CamelModel):
    feature_name: str
    features: list[Feature] = Field(default_factory=list)
    occurrences: list[SuggestionOccurrence] = Field(default_factory=list)
    transcript_count: int = 0
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None


# Transcript reads
class TranscriptListItem(CamelModel):
    id: int
    summary: str | None = None
    created_at: datetime | None = None


class TranscriptFeature(CamelModel):
    feature_name: str
    ai_summary: str = ""
    quotes: list[AnalysisQuote] = Field(default_factory=list)
    # Filled only when history is requested
    feature_id: int | None = None
    status: FeatureStatus | None = None
    pain_points_count: int | None = None


class TranscriptDetail(CamelModel):
    id: int
    transcript_text: str
    summary: str | None = None
    created_at: datetime | None = None
    features: list[TranscriptFeature] = Field(default_factory=list)
    new_feature_suggestions: list[TranscriptFeature] = Field(default_factory=list)


# Response envelopes
class MessageResponse(CamelModel):
    success: bool = True
    message: str


class CountResponse(MessageResponse):
    count: int


class FeatureListResponse(CamelModel):
    success: bool = True
    features: list[Feature]
    count: int


class FeatureNamesResponse(CamelModel):
    success: bool = True
    features: list[str]


class FeaturesWithCountsResponse(CamelModel):
    success: bool = True
    features: list[FeatureWithCount]


class FeatureResponse(CamelModel):
    success: bool = True
    message: str | None = None
    feature: Feature


class FeatureDetailsResponse(CamelModel):
    success: bool = True
    feature: FeatureDetails


class SuggestionHistoryResponse(CamelModel):
    success: bool = True
    history: SuggestionHistory


class TranscriptListResponse(CamelModel):
    success: bool = True
    transcripts: list[TranscriptListItem]


class TranscriptDetailResponse(CamelModel):
    success: bool = True
    transcript: TranscriptDetail
