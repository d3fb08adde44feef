"""
Unit tests for the Gemini analyzer, response parsing and engine selection
"""
import json
from types import SimpleNamespace

import pytest

from before_send.config import Settings
from before_send.exceptions import AnalysisError
from before_send.schemas import MessageInput
from before_send.services.analyzer import (
    FALLBACK_SUMMARY,
    GeminiAnalyzer,
    build_user_prompt,
    fallback_result,
    parse_analysis_response,
)
from before_send.services import analyzer as analyzer_module
from before_send.services.engine import AnalysisEngine
from before_send.services.simulator import SimulatedAnalyzer

VALID_PAYLOAD = {
    "tone_label": "aggressive",
    "risk_level": "high",
    "problem_summary": "일반화 표현이 있어요.",
    "highlighted_words": [
        {"start": 4, "end": 6, "type": "generalization", "token": "맨날"},
    ],
    "revised": {
        "soft": "요즘 조금 아쉬웠어요.",
        "neutral": "최근에 몇 번 늦었어요.",
        "assertive": "약속 시간은 지켜 주세요.",
    },
}


class FakeGeminiClient:
    """Stands in for GenerativeModel; replays queued responses or errors"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []
        self.timeouts = []

    async def generate_content_async(self, prompt, request_options=None):
        self.prompts.append(prompt)
        self.timeouts.append((request_options or {}).get("timeout"))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if not isinstance(outcome, str):
            return outcome
        return SimpleNamespace(parts=[outcome] if outcome else [], text=outcome)


class SafetyBlockedResponse:
    """Response whose quick accessors fail the way the library does for blocked prompts"""

    @property
    def parts(self):
        raise ValueError(
            "Invalid operation: The `response.parts` quick accessor requires a single candidate, "
            "but `response.candidates` is empty."
        )

    @property
    def text(self):
        raise ValueError("Invalid operation: The `response.text` quick accessor requires the response to contain a valid `Part`")


def _message(text="너 왜 맨날 그 모양이야? 한심하다"):
    return MessageInput(original_message=text, situation="친구와 약속", preferred_tone="soft")


class TestParseResponse:
    """Test suite for strict JSON parsing"""

    def test_plain_json(self):
        result = parse_analysis_response(json.dumps(VALID_PAYLOAD))

        assert result.tone_label == "aggressive"
        assert result.blocked is False
        assert result.highlighted_words[0].token == "맨날"

    def test_fenced_block(self):
        text = "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"

        assert parse_analysis_response(text).risk_level == "high"

    def test_fence_without_language(self):
        text = "```\n" + json.dumps(VALID_PAYLOAD) + "\n```"

        assert parse_analysis_response(text).revised.soft == "요즘 조금 아쉬웠어요."

    def test_blocked_flag_kept(self):
        payload = dict(VALID_PAYLOAD, blocked=True)

        assert parse_analysis_response(json.dumps(payload)).blocked is True

    def test_not_json(self):
        with pytest.raises(AnalysisError):
            parse_analysis_response("I cannot help with that.")

    def test_unknown_tone_rejected(self):
        payload = dict(VALID_PAYLOAD, tone_label="angry")

        with pytest.raises(AnalysisError):
            parse_analysis_response(json.dumps(payload))

    def test_missing_revision_rejected(self):
        payload = dict(VALID_PAYLOAD, revised={"soft": "a", "neutral": "b"})

        with pytest.raises(AnalysisError):
            parse_analysis_response(json.dumps(payload))

    def test_empty_revision_rejected(self):
        payload = dict(VALID_PAYLOAD, revised={"soft": "", "neutral": "b", "assertive": "c"})

        with pytest.raises(AnalysisError):
            parse_analysis_response(json.dumps(payload))

    def test_negative_offset_rejected(self):
        payload = dict(VALID_PAYLOAD, highlighted_words=[
            {"start": -1, "end": 2, "type": "insult", "token": "x"},
        ])

        with pytest.raises(AnalysisError):
            parse_analysis_response(json.dumps(payload))


class TestPrompt:
    def test_payload_fields(self):
        prompt = build_user_prompt(_message())
        payload = json.loads(prompt.split("\n\n", 1)[1])

        assert payload == {
            "situation": "친구와 약속",
            "original_message": "너 왜 맨날 그 모양이야? 한심하다",
            "preferred_tone": "soft",
            "language": "ko",
        }


class TestGeminiAnalyzer:
    """Test suite for the external-model analyzer"""

    @pytest.mark.asyncio
    async def test_successful_analysis(self):
        client = FakeGeminiClient(json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="test", client=client)

        result = await analyzer.analyze(_message())

        assert result.tone_label == "aggressive"
        assert len(client.prompts) == 1

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        client = FakeGeminiClient(Exception("429 quota exceeded"), json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="test", client=client)
        analyzer.BASE_DELAY = 0

        result = await analyzer.analyze(_message())

        assert result.risk_level == "high"
        assert len(client.prompts) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        client = FakeGeminiClient(*[Exception("503 unavailable")] * GeminiAnalyzer.MAX_RETRIES)
        analyzer = GeminiAnalyzer(api_key="test", client=client)
        analyzer.BASE_DELAY = 0

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())
        assert len(client.prompts) == GeminiAnalyzer.MAX_RETRIES

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self):
        client = FakeGeminiClient(Exception("API key not valid"), json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="bad", client=client)

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())
        assert len(client.prompts) == 1

    @pytest.mark.asyncio
    async def test_empty_response(self):
        analyzer = GeminiAnalyzer(api_key="test", client=FakeGeminiClient(""))

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())

    @pytest.mark.asyncio
    async def test_provider_blocked_response(self):
        """Accessor errors from a safety-blocked response surface as AnalysisError"""
        analyzer = GeminiAnalyzer(api_key="test", client=FakeGeminiClient(SafetyBlockedResponse()))

        with pytest.raises(AnalysisError) as exc_info:
            await analyzer.analyze(_message())
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_no_sleep_after_last_attempt(self, monkeypatch):
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(analyzer_module.asyncio, "sleep", record_sleep)
        client = FakeGeminiClient(*[Exception("503 unavailable")] * GeminiAnalyzer.MAX_RETRIES)
        analyzer = GeminiAnalyzer(api_key="test", client=client)

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_attempt_timeout_bounded_by_budget(self):
        client = FakeGeminiClient(json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="test", client=client, budget=5.0)

        await analyzer.analyze(_message())

        assert 0 < client.timeouts[0] <= 5.0

    @pytest.mark.asyncio
    async def test_default_attempt_timeout_without_budget(self):
        client = FakeGeminiClient(json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="test", client=client)

        await analyzer.analyze(_message())

        assert client.timeouts == [GeminiAnalyzer.REQUEST_TIMEOUT]

    @pytest.mark.asyncio
    async def test_no_retry_past_budget(self, monkeypatch):
        """A backoff that would outlast the budget ends the attempts early"""
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(analyzer_module.asyncio, "sleep", record_sleep)
        client = FakeGeminiClient(Exception("timeout"), json.dumps(VALID_PAYLOAD))
        analyzer = GeminiAnalyzer(api_key="test", client=client, budget=0.5)

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())
        assert len(client.prompts) == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        analyzer = GeminiAnalyzer(api_key="test", client=FakeGeminiClient("{not json"))

        with pytest.raises(AnalysisError):
            await analyzer.analyze(_message())


class TestFallback:
    def test_fallback_echoes_original(self):
        result = fallback_result("원래 메시지 그대로입니다")

        assert result.tone_label == "neutral"
        assert result.risk_level == "medium"
        assert result.problem_summary == FALLBACK_SUMMARY
        assert result.highlighted_words == []
        assert result.blocked is False
        assert {result.revised.soft, result.revised.neutral, result.revised.assertive} == {"원래 메시지 그대로입니다"}


class TestEngineSelection:
    """Test suite for startup engine selection"""

    def test_simulator_by_default(self):
        engine = AnalysisEngine.from_settings(Settings(use_simulator=True, gemini_api_key="key"))

        assert engine.is_simulated
        assert engine.get_model_info() == {
            "implementation": "SimulatedAnalyzer",
            "model": SimulatedAnalyzer.MODEL_NAME,
            "is_simulated": True,
        }

    def test_simulator_without_api_key(self):
        engine = AnalysisEngine.from_settings(Settings(use_simulator=False, gemini_api_key=""))

        assert engine.is_simulated

    def test_gemini_when_configured(self, monkeypatch):
        monkeypatch.setattr(GeminiAnalyzer, "_initialize_client", lambda self: None)

        engine = AnalysisEngine.from_settings(
            Settings(use_simulator=False, gemini_api_key="key", gemini_model="gemini-test")
        )

        assert not engine.is_simulated
        assert engine.analyzer.budget == 20.0
        assert engine.get_model_info() == {
            "implementation": "GeminiAnalyzer",
            "model": "gemini-test",
            "is_simulated": False,
        }
