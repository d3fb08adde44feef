"""
Analysis Engine
Picks the analyzer implementation once, based on configuration
"""
import logging
from typing import Dict

from before_send.config import Settings
from before_send.schemas import AnalysisResult, MessageInput
from before_send.services.analyzer import BaseAnalyzer, GeminiAnalyzer
from before_send.services.simulator import SimulatedAnalyzer

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """
    Wraps the configured analyzer so the choice is made at startup and can
    be inspected afterwards
    """

    def __init__(self, analyzer: BaseAnalyzer):
        self.analyzer = analyzer

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisEngine":
        if settings.simulator_selected:
            logger.info("Running with the rule-based simulator - no external API calls will be made")
            return cls(SimulatedAnalyzer())

        logger.info(f"Running with Gemini model {settings.gemini_model}")
        return cls(GeminiAnalyzer(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            budget=settings.analysis_timeout_seconds,
        ))

    @property
    def is_simulated(self) -> bool:
        return isinstance(self.analyzer, SimulatedAnalyzer)

    async def analyze(self, message: MessageInput) -> AnalysisResult:
        return await self.analyzer.analyze(message)

    def get_model_info(self) -> Dict:
        """Get information about the current analyzer"""
        return {
            "implementation": type(self.analyzer).__name__,
            "model": getattr(self.analyzer, "model", SimulatedAnalyzer.MODEL_NAME),
            "is_simulated": self.is_simulated,
        }
