"""
Highlight rendering helpers
Turns possibly overlapping spans into ordered plain/highlighted segments
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from before_send.schemas import HighlightedSpan, TextSegment


@dataclass
class _Merged:
    start: int
    end: int
    type: str


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def merge_spans(text: str, spans: Sequence[HighlightedSpan]) -> List[_Merged]:
    """
    Clamp offsets into the text, order by start and fold overlapping spans
    into the union of their ranges. A merged span keeps the first span's type.
    """
    length = len(text)
    merged: List[_Merged] = []

    for span in sorted(spans, key=lambda s: s.start):
        start = _clamp(span.start, 0, length)
        end = _clamp(span.end, start, length)
        if end == start:
            continue

        if merged and start < merged[-1].end:
            merged[-1].end = max(merged[-1].end, end)
        else:
            merged.append(_Merged(start=start, end=end, type=span.type))

    return merged


def build_segments(text: str, spans: Optional[Sequence[HighlightedSpan]]) -> List[TextSegment]:
    """Split text into alternating plain and highlighted segments"""
    if not spans:
        return [TextSegment(text=text, is_highlight=False)]

    segments: List[TextSegment] = []
    last_index = 0

    for span in merge_spans(text, spans):
        if span.start > last_index:
            segments.append(TextSegment(text=text[last_index:span.start], is_highlight=False))
        segments.append(TextSegment(text=text[span.start:span.end], is_highlight=True, type=span.type))
        last_index = span.end

    if last_index < len(text):
        segments.append(TextSegment(text=text[last_index:], is_highlight=False))

    return segments
