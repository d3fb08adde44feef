"""
Safety Gate
Keyword screen applied before rate limiting and analysis
"""
from dataclasses import dataclass
from typing import Optional, Sequence

# Violence, self-harm and legal-threat terms
BLOCKED_KEYWORDS = (
    "죽여",
    "때려",
    "신고",
    "고소",
    "협박",
    "살해",
    "자살",
    "폭행",
)


@dataclass(frozen=True)
class ScreenResult:
    """Outcome of a safety screen"""
    blocked: bool
    matched_keyword: Optional[str] = None


def screen(text: str, keywords: Sequence[str] = BLOCKED_KEYWORDS) -> ScreenResult:
    """Case-insensitive substring search against the deny-list"""
    lowered = text.lower()

    for keyword in keywords:
        if keyword.lower() in lowered:
            return ScreenResult(blocked=True, matched_keyword=keyword)

    return ScreenResult(blocked=False)


def is_model_blocked(blocked) -> bool:
    """Only an explicit ``True`` from the analyzer counts as blocked"""
    return blocked is True
