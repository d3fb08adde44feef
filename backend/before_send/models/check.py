"""
MessageCheck model - an analyzed message owned by a signed-in user
"""
import json
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, Index
from before_send.database import Base
from before_send.schemas import PROMPT_VERSION, CheckRecord, HighlightedSpan, RevisedOption, ToneAnalysis


class MessageCheck(Base):
    """Durable copy of a check result, scoped to its owner"""

    __tablename__ = "message_checks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)

    # Input snapshot
    situation = Column(String(100), nullable=True)
    original_message = Column(Text, nullable=False)
    selected_tone = Column(String(20), nullable=True)  # soft, neutral, assertive

    # Analysis
    tone_label = Column(String(50), nullable=False)  # aggressive, defensive, passive_aggressive, neutral
    risk_level = Column(String(20), nullable=False)  # high, medium, low
    problem_summary = Column(Text, nullable=False)
    highlighted_words = Column(Text, nullable=False, default="[]")  # JSON array of spans

    # Revisions
    revised_options = Column(Text, nullable=False)  # JSON array of {tone, label, message}
    prompt_version = Column(String(20), nullable=False, default=PROMPT_VERSION)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("ix_message_checks_user_created", "user_id", "created_at"),
    )

    @classmethod
    def from_record(cls, record: CheckRecord, user_id: str) -> "MessageCheck":
        return cls(
            id=record.id,
            user_id=user_id,
            situation=record.situation,
            original_message=record.original_message,
            selected_tone=record.preferred_tone,
            tone_label=record.tone_analysis.label,
            risk_level=record.tone_analysis.risk_level,
            problem_summary=record.tone_analysis.problem_summary,
            highlighted_words=json.dumps(
                [span.model_dump() for span in record.highlighted_words],
                ensure_ascii=False,
            ),
            revised_options=json.dumps(
                [option.model_dump() for option in record.revised_options],
                ensure_ascii=False,
            ),
            prompt_version=PROMPT_VERSION,
            created_at=record.created_at,
        )

    def to_record(self) -> CheckRecord:
        created_at = self.created_at
        # SQLite drops tzinfo on the way back
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return CheckRecord(
            id=self.id,
            situation=self.situation,
            original_message=self.original_message,
            preferred_tone=self.selected_tone,
            tone_analysis=ToneAnalysis(
                label=self.tone_label,
                risk_level=self.risk_level,
                problem_summary=self.problem_summary,
            ),
            highlighted_words=[HighlightedSpan(**span) for span in json.loads(self.highlighted_words)],
            revised_options=[RevisedOption(**option) for option in json.loads(self.revised_options)],
            created_at=created_at,
        )
