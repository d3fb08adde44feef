"""
Check Service
Runs a message check end to end:
validate -> safety screen -> rate limit -> analyze -> persist
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from before_send.clock import Clock, utcnow
from before_send.exceptions import (
    BlockedContent,
    CheckNotFound,
    InputValidationError,
    RateLimited,
    ServerError,
    StorageError,
)
from before_send.schemas import AnalysisResult, CheckRecord, HistoryItem, MessageInput, TextSegment
from before_send.services.analyzer import fallback_result
from before_send.services.engine import AnalysisEngine
from before_send.services.highlighting import build_segments
from before_send.services.rate_limiter import UNKNOWN_IP, BaseRateLimiter, rate_limit_identifier
from before_send.services.result_store import ResultStore
from before_send.services.safety import is_model_blocked, screen

logger = logging.getLogger(__name__)

# (field, pydantic error type) -> message shown to the user
VALIDATION_MESSAGES = {
    ("original_message", "missing"): "메시지를 입력해 주세요",
    ("original_message", "string_type"): "메시지를 입력해 주세요",
    ("original_message", "string_too_short"): "메시지는 최소 10자 이상이어야 합니다",
    ("original_message", "string_too_long"): "메시지는 500자를 초과할 수 없습니다",
    ("situation", "string_type"): "상황 설명은 문자열이어야 합니다",
    ("situation", "string_too_long"): "상황 설명은 100자를 초과할 수 없습니다",
    ("preferred_tone", "literal_error"): "원하는 톤은 soft, neutral, assertive 중 하나여야 합니다",
}


@dataclass(frozen=True)
class Caller:
    """Who is making the request, as far as the session provider knows"""
    user_id: Optional[str] = None
    ip: str = UNKNOWN_IP

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def rate_limit_key(self) -> str:
        return rate_limit_identifier(self.user_id, self.ip)


def validate_message(payload: Any) -> MessageInput:
    """Validate the request body, reporting only the first violated constraint"""
    if not isinstance(payload, dict):
        raise InputValidationError()

    try:
        return MessageInput.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = first["loc"][0] if first["loc"] else None
        raise InputValidationError(VALIDATION_MESSAGES.get((field, first["type"]))) from e


class CheckService:
    """Composes the safety gate, rate limiter, analysis engine and result store"""

    def __init__(
        self,
        engine: AnalysisEngine,
        rate_limiter: BaseRateLimiter,
        store: ResultStore,
        clock: Clock = utcnow,
        analysis_timeout: float = 20.0,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.engine = engine
        self.rate_limiter = rate_limiter
        self.store = store
        self.clock = clock
        self.analysis_timeout = analysis_timeout
        self.id_factory = id_factory

    async def create_check(self, payload: Any, caller: Caller) -> CheckRecord:
        message = validate_message(payload)

        screened = screen(message.original_message)
        if screened.blocked:
            logger.info(f"Message blocked by safety gate (keyword: {screened.matched_keyword})")
            raise BlockedContent()

        limit = await self.rate_limiter.check(caller.rate_limit_key)
        if not limit.allowed:
            logger.info(f"Rate limit reached for {caller.rate_limit_key}, resets at {limit.reset.isoformat()}")
            raise RateLimited(limit.reset, self.rate_limiter.limit)

        result = await self._analyze(message)
        if is_model_blocked(result.blocked):
            logger.info("Message blocked by the analyzer")
            raise BlockedContent()

        record = CheckRecord.from_analysis(
            check_id=self.id_factory(),
            message=message,
            result=result,
            created_at=self.clock(),
        )
        self._persist(record, caller)

        return record

    async def _analyze(self, message: MessageInput) -> AnalysisResult:
        """Engine failures of any kind, timeouts included, fall back to a fixed result"""
        try:
            return await asyncio.wait_for(
                self.engine.analyze(message),
                timeout=self.analysis_timeout,
            )
        except Exception as e:
            logger.warning(f"Analysis failed, substituting fallback result: {e!r}")
            return fallback_result(message.original_message)

    def _persist(self, record: CheckRecord, caller: Caller) -> None:
        # The check still succeeds when the durable write fails
        try:
            self.store.save(record, caller.user_id)
        except StorageError:
            logger.error(f"Failed to store check {record.id}", exc_info=True)

    def fetch_check(self, check_id: str, caller: Caller) -> CheckRecord:
        try:
            record = self.store.fetch(check_id, caller.user_id)
        except StorageError as e:
            logger.error(f"Failed to load check {check_id}", exc_info=True)
            raise ServerError() from e

        if record is None:
            raise CheckNotFound()

        return record

    def fetch_segments(self, check_id: str, caller: Caller) -> List[TextSegment]:
        record = self.fetch_check(check_id, caller)
        return build_segments(record.original_message, record.highlighted_words)

    def delete_check(self, check_id: str, caller: Caller) -> None:
        try:
            deleted = self.store.delete(check_id, caller.user_id)
        except StorageError as e:
            logger.error(f"Failed to delete check {check_id}", exc_info=True)
            raise ServerError("삭제에 실패했습니다.") from e

        if not deleted:
            logger.debug(f"Delete of {check_id} matched nothing")

    def list_history(self, caller: Caller) -> List[HistoryItem]:
        try:
            records = self.store.history(caller.user_id)
        except StorageError as e:
            logger.error("Failed to load history", exc_info=True)
            raise ServerError("기록을 불러오는데 실패했습니다.") from e

        return [HistoryItem.from_record(record) for record in records]

    async def close(self) -> None:
        """Release rate limiter and database connections"""
        await self.rate_limiter.close()
        self.store.close()
