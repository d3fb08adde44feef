"""
Tone Analyzer
Uses the Gemini API to classify tone and rewrite a draft message
"""
import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from before_send.exceptions import AnalysisError
from before_send.schemas import AnalysisResult, MessageInput, RevisedMessages

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "분석을 완료할 수 없었습니다. 다시 시도해 주세요."

SYSTEM_PROMPT = """You are an assistant that helps users rewrite conflict-prone messages before sending.
You must:
1) Classify tone as one of: aggressive, defensive, passive_aggressive, neutral.
2) Extract risky spans from the original message as character offsets (start, end) and type labels:
   blame, generalization, insult, threat, sarcasm, accusatory_question, profanity, ultimatum.
3) Produce exactly 3 revised versions that preserve intent:
   - soft (warm but not submissive)
   - neutral (fact-focused, low emotion)
   - assertive (clear boundaries, no insults)
4) Do NOT give relationship advice, moral judgments, or therapy.
5) If the user requests threats, coercion, gaslighting, or evidence manipulation, refuse with "blocked: true".
6) Return STRICT JSON only, matching the provided schema. Do not include any other text.

Expected JSON schema:
{
  "tone_label": "aggressive|defensive|passive_aggressive|neutral",
  "risk_level": "high|medium|low",
  "problem_summary": "string (1-2 lines, non-judgmental)",
  "highlighted_words": [
    { "start": number, "end": number, "type": "blame|generalization|insult|threat|sarcasm|accusatory_question|profanity|ultimatum", "token": "string" }
  ],
  "revised": {
    "soft": "string",
    "neutral": "string",
    "assertive": "string"
  },
  "blocked": false
}"""

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class BaseAnalyzer(ABC):
    """Base class for tone analysis engines"""

    name = "base"

    @abstractmethod
    async def analyze(self, message: MessageInput) -> AnalysisResult:
        """Analyze a draft message. Raises AnalysisError on failure."""


def build_user_prompt(message: MessageInput) -> str:
    """Serialize the request payload the model is asked to analyze"""
    payload = {
        "situation": message.situation or None,
        "original_message": message.original_message,
        "preferred_tone": message.preferred_tone or None,
        "language": "ko",
    }
    return (
        "Analyze this message and provide revisions in JSON format:\n\n"
        + json.dumps(payload, ensure_ascii=False, indent=2)
    )


def parse_analysis_response(response_text: str) -> AnalysisResult:
    """
    Parse model output as strict JSON, tolerating one fenced code block
    wrapper, then validate it against the AnalysisResult schema.
    """
    text = response_text.strip()

    match = _FENCED_BLOCK.search(text)
    if match:
        text = match.group(1)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnalysisError(
            f"Failed to parse model response as JSON: {response_text[:200]}"
        ) from e

    try:
        return AnalysisResult.model_validate(parsed)
    except ValidationError as e:
        raise AnalysisError(f"Invalid model response schema: {e}") from e


def fallback_result(original_message: str) -> AnalysisResult:
    """Result substituted when analysis fails; never blocked"""
    return AnalysisResult(
        tone_label="neutral",
        risk_level="medium",
        problem_summary=FALLBACK_SUMMARY,
        highlighted_words=[],
        revised=RevisedMessages(
            soft=original_message,
            neutral=original_message,
            assertive=original_message,
        ),
        blocked=False,
    )


class GeminiAnalyzer(BaseAnalyzer):
    """
    Gemini API integration:
    - Retry logic with exponential backoff for transient errors
    - Per-attempt timeouts bounded by an overall time budget
    - JSON response mime type
    - Strict schema validation of the returned payload
    """

    name = "gemini"

    MAX_RETRIES = 3
    BASE_DELAY = 1.0  # seconds
    MAX_DELAY = 8.0  # seconds
    REQUEST_TIMEOUT = 15.0  # seconds

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        client=None,
        budget: Optional[float] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.budget = budget
        self._client = client

        if self._client is None:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize Gemini client with the fixed system prompt"""
        import google.generativeai as genai

        genai.configure(api_key=self.api_key)

        generation_config = {
            "temperature": 0.4,
            "max_output_tokens": 2048,
            "response_mime_type": "application/json",
        }

        self._client = genai.GenerativeModel(
            model_name=self.model,
            system_instruction=SYSTEM_PROMPT,
            generation_config=generation_config,
        )

    async def analyze(self, message: MessageInput) -> AnalysisResult:
        prompt = build_user_prompt(message)
        last_error: Optional[Exception] = None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget if self.budget else None

        for attempt in range(self.MAX_RETRIES):
            timeout = self.REQUEST_TIMEOUT
            if deadline is not None:
                timeout = min(timeout, deadline - loop.time())
                if timeout <= 0:
                    break

            try:
                response = await self._client.generate_content_async(
                    prompt,
                    request_options={"timeout": timeout},
                )
            except Exception as e:
                last_error = e
                if not self._is_retryable(e) or attempt == self.MAX_RETRIES - 1:
                    break

                delay = min(self.BASE_DELAY * (2 ** attempt), self.MAX_DELAY)
                if deadline is not None and loop.time() + delay >= deadline:
                    logger.warning(f"Gemini call failed ({e}), no time left to retry")
                    break

                logger.warning(f"Gemini call failed ({e}), retrying in {delay:.0f}s")
                await asyncio.sleep(delay)
                continue

            return parse_analysis_response(self._response_text(response))

        raise AnalysisError(f"Gemini request failed: {last_error}") from last_error

    @staticmethod
    def _response_text(response) -> str:
        # The quick accessors raise ValueError when the provider's own safety
        # filters blocked the prompt or the candidate
        try:
            parts = response.parts
            text = response.text
        except ValueError as e:
            raise AnalysisError("No text response from Gemini") from e

        if not parts:
            raise AnalysisError("No text response from Gemini")

        return text

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        error_str = str(error).lower()
        markers = ("429", "quota", "rate", "500", "503", "timeout", "deadline")
        return any(marker in error_str for marker in markers)
