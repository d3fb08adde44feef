"""
Pydantic schemas for message checks
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ToneLabel = Literal["aggressive", "defensive", "passive_aggressive", "neutral"]
RiskLevel = Literal["high", "medium", "low"]
RevisionTone = Literal["soft", "neutral", "assertive"]
HighlightType = Literal[
    "blame",
    "generalization",
    "insult",
    "threat",
    "sarcasm",
    "accusatory_question",
    "profanity",
    "ultimatum",
]

REVISION_TONES = ("soft", "neutral", "assertive")

REVISION_LABELS = {
    "soft": "부드럽게",
    "neutral": "중립",
    "assertive": "단호하게",
}

SNIPPET_LENGTH = 50

# Stored with every durable check; bump when SYSTEM_PROMPT changes
PROMPT_VERSION = "v1"


# Input
class MessageInput(BaseModel):
    situation: Optional[str] = Field(default=None, max_length=100)
    original_message: str = Field(min_length=10, max_length=500)
    preferred_tone: Optional[RevisionTone] = None


# Engine output
class HighlightedSpan(BaseModel):
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    type: HighlightType
    token: str


class RevisedMessages(BaseModel):
    soft: str = Field(min_length=1)
    neutral: str = Field(min_length=1)
    assertive: str = Field(min_length=1)


class AnalysisResult(BaseModel):
    tone_label: ToneLabel
    risk_level: RiskLevel
    problem_summary: str
    highlighted_words: List[HighlightedSpan]
    revised: RevisedMessages
    blocked: bool = False


# Persisted / returned
class ToneAnalysis(BaseModel):
    label: ToneLabel
    risk_level: RiskLevel
    problem_summary: str


class RevisedOption(BaseModel):
    tone: RevisionTone
    label: str
    message: str


class CheckRecord(BaseModel):
    id: str
    situation: Optional[str] = None
    original_message: str
    preferred_tone: Optional[RevisionTone] = None
    tone_analysis: ToneAnalysis
    highlighted_words: List[HighlightedSpan]
    revised_options: List[RevisedOption]
    created_at: datetime

    model_config = {"frozen": True}

    @classmethod
    def from_analysis(
        cls,
        check_id: str,
        message: MessageInput,
        result: AnalysisResult,
        created_at: datetime,
    ) -> "CheckRecord":
        """Build the stored record for a freshly analyzed message"""
        return cls(
            id=check_id,
            situation=message.situation,
            original_message=message.original_message,
            preferred_tone=message.preferred_tone,
            tone_analysis=ToneAnalysis(
                label=result.tone_label,
                risk_level=result.risk_level,
                problem_summary=result.problem_summary,
            ),
            highlighted_words=list(result.highlighted_words),
            revised_options=[
                RevisedOption(
                    tone=tone,
                    label=REVISION_LABELS[tone],
                    message=getattr(result.revised, tone),
                )
                for tone in REVISION_TONES
            ],
            created_at=created_at,
        )


class HistoryItem(BaseModel):
    id: str
    tone_label: ToneLabel
    original_snippet: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: CheckRecord) -> "HistoryItem":
        message = record.original_message
        if len(message) > SNIPPET_LENGTH:
            message = message[:SNIPPET_LENGTH] + "..."

        return cls(
            id=record.id,
            tone_label=record.tone_analysis.label,
            original_snippet=message,
            created_at=record.created_at,
        )


# Responses
class CheckCreatedResponse(BaseModel):
    id: str
    status: str = "ok"


class HistoryResponse(BaseModel):
    items: List[HistoryItem]


class TextSegment(BaseModel):
    text: str
    is_highlight: bool
    type: Optional[HighlightType] = None


class SegmentsResponse(BaseModel):
    id: str
    segments: List[TextSegment]


class EngineInfoResponse(BaseModel):
    implementation: str
    model: str
    is_simulated: bool
