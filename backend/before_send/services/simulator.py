"""
Tone Simulator
Deterministic rule-based analyzer used when no external model is configured
"""
import re
from dataclasses import dataclass
from typing import List, Pattern, Sequence, Tuple

from before_send.schemas import (
    AnalysisResult,
    HighlightedSpan,
    MessageInput,
    RevisedMessages,
)
from before_send.services.analyzer import BaseAnalyzer

AGGRESSIVE_KEYWORDS = ["왜", "도대체", "진짜", "대체", "뭐야"]
GENERALIZATION_KEYWORDS = ["맨날", "항상", "늘", "절대", "전혀"]
INSULT_KEYWORDS = ["한심", "바보", "멍청", "짜증", "미친"]
PASSIVE_AGGRESSIVE_KEYWORDS = ["알겠어", "그래", "좋을대로", "상관없", "맘대로"]
DEFENSIVE_KEYWORDS = ["내 잘못", "그게 아니라", "오해", "너야말로"]

# Only the question-forming words count as accusatory highlights
ACCUSATORY_KEYWORDS = AGGRESSIVE_KEYWORDS[:2]

HIGHLIGHT_PATTERNS = [
    (GENERALIZATION_KEYWORDS, "generalization"),
    (INSULT_KEYWORDS, "insult"),
    (ACCUSATORY_KEYWORDS, "accusatory_question"),
]

RISK_BY_TONE = {
    "aggressive": "high",
    "passive_aggressive": "medium",
    "defensive": "medium",
    "neutral": "low",
}

Rule = Tuple[Pattern, str]


def _rules(*pairs: Tuple[str, str]) -> List[Rule]:
    return [(re.compile(pattern), replacement) for pattern, replacement in pairs]


@dataclass(frozen=True)
class RevisionStyle:
    """Ordered substitutions plus the fixed framing for one target tone"""
    rules: Sequence[Rule]
    min_length: int
    lead_in: str
    closing: str

    def apply_rules(self, text: str) -> str:
        for pattern, replacement in self.rules:
            text = pattern.sub(replacement, text)
        return text.strip(" .")

    def revise(self, original: str) -> str:
        revised = self.apply_rules(original)

        if len(revised) < self.min_length:
            revised = (self.lead_in + revised).strip()

        if not revised.endswith("."):
            revised = revised.rstrip(" ,") + "."

        return (revised + self.closing).strip()


SOFT_STYLE = RevisionStyle(
    rules=_rules(
        (r"왜", ""),
        (r"맨날|항상", "가끔"),
        (r"진짜|도대체", ""),
        (r"한심하다|바보야", "아쉬워요"),
        (r"[?!]+", "."),
        (r"\s+", " "),
    ),
    min_length=10,
    lead_in="제 마음을 전하고 싶은데, ",
    closing=" 이야기 나눠볼 수 있을까요?",
)

NEUTRAL_STYLE = RevisionStyle(
    rules=_rules(
        (r"왜|도대체|진짜", ""),
        (r"맨날|항상|늘", "최근에"),
        (r"한심하다|바보야|짜증나", ""),
        (r"[?!]+", "."),
        (r"\s+", " "),
    ),
    min_length=5,
    lead_in="확인 부탁드립니다. ",
    closing="",
)

ASSERTIVE_STYLE = RevisionStyle(
    rules=_rules(
        (r"왜.*?야\?", ""),
        (r"맨날|항상", "여러 번"),
        (r"한심하다|바보야", "어렵습니다"),
        (r"[?!]+", "."),
        (r"\s+", " "),
    ),
    min_length=10,
    lead_in="분명하게 말씀드리자면, 현재 상황은 ",
    closing=" 이 부분은 개선이 필요합니다.",
)

REVISION_STYLES = {
    "soft": SOFT_STYLE,
    "neutral": NEUTRAL_STYLE,
    "assertive": ASSERTIVE_STYLE,
}


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def detect_tone(message: str) -> str:
    """Keyword classification; the first matching rule wins"""
    lower = message.lower()

    has_aggressive = _contains_any(lower, AGGRESSIVE_KEYWORDS) or _contains_any(lower, INSULT_KEYWORDS)
    has_generalization = _contains_any(lower, GENERALIZATION_KEYWORDS)
    has_passive_aggressive = _contains_any(lower, PASSIVE_AGGRESSIVE_KEYWORDS)

    if has_aggressive and has_generalization:
        return "aggressive"
    if has_passive_aggressive and has_generalization:
        return "passive_aggressive"
    if _contains_any(lower, DEFENSIVE_KEYWORDS):
        return "defensive"
    if has_aggressive or has_generalization:
        return "aggressive"
    if has_passive_aggressive:
        return "passive_aggressive"
    return "neutral"


def risk_for_tone(tone: str) -> str:
    return RISK_BY_TONE[tone]


def detect_highlights(message: str) -> List[HighlightedSpan]:
    """
    Emit one span per case-sensitive keyword occurrence, then sort by start.

    A span whose start equals the preceding span's start is dropped, so at
    most one highlight survives per start offset (the first in scan order).
    """
    found: List[HighlightedSpan] = []

    for keywords, span_type in HIGHLIGHT_PATTERNS:
        for keyword in keywords:
            index = message.find(keyword)
            while index != -1:
                found.append(HighlightedSpan(
                    start=index,
                    end=index + len(keyword),
                    type=span_type,
                    token=keyword,
                ))
                index = message.find(keyword, index + 1)

    # sorted() is stable, so scan order decides ties
    found = sorted(found, key=lambda span: span.start)

    highlights: List[HighlightedSpan] = []
    for span in found:
        if highlights and highlights[-1].start == span.start:
            continue
        highlights.append(span)

    return highlights


def problem_summary(tone: str, highlight_count: int) -> str:
    summaries = {
        "aggressive": (
            f"이 메시지에는 상대방을 비난하거나 일반화하는 표현이 {highlight_count}개 포함되어 있어요. "
            "이러한 표현은 상대방을 방어적으로 만들 수 있습니다."
        ),
        "defensive": "이 메시지는 자신을 방어하려는 톤이 강해서, 대화가 책임 공방으로 흐를 수 있어요.",
        "passive_aggressive": "겉으로는 동의하는 것 같지만 속으로는 불만이 담긴 표현이에요. 상대방이 혼란스러울 수 있습니다.",
        "neutral": "전반적으로 중립적인 톤이에요. 큰 문제는 없어 보입니다.",
    }
    return summaries[tone]


class SimulatedAnalyzer(BaseAnalyzer):
    """
    Rule-based analyzer for development, testing and offline operation.
    Same input always yields the same result; never blocks.
    """

    name = "simulator"
    MODEL_NAME = "rule-based-simulator"

    async def analyze(self, message: MessageInput) -> AnalysisResult:
        return self.analyze_text(message.original_message)

    def analyze_text(self, original: str) -> AnalysisResult:
        tone = detect_tone(original)
        highlights = detect_highlights(original)

        return AnalysisResult(
            tone_label=tone,
            risk_level=risk_for_tone(tone),
            problem_summary=problem_summary(tone, len(highlights)),
            highlighted_words=highlights,
            revised=RevisedMessages(**{
                tone_name: style.revise(original)
                for tone_name, style in REVISION_STYLES.items()
            }),
            blocked=False,
        )
