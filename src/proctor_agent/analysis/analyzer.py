"""
Frame Analyzer
==============

Runs one analysis cycle per frame and emits the resulting events.

The analyzer wraps the AnalysisGraph and reports results to a
ViolationSink: accepted violations go to on_violation in parse order,
remote failures go to on_error. Nothing is raised across the
asynchronous boundary for remote failures, since frame submission is
fire-and-forget from the producer's point of view.

Design Rules:
    - No automatic retry; the next frame is the retry
    - Stateless across calls except configuration (thresholds, prompt)
    - Effective threshold = max(global threshold, category threshold)
"""

import logging
from typing import Dict, List, Mapping, Optional, Protocol

from proctor_agent.analysis.backend import ModelBackend
from proctor_agent.analysis.graph import AnalysisGraph
from proctor_agent.analysis.parser import DEFAULT_CONFIDENCE
from proctor_agent.models.request import GenerationConfig, SafetySetting
from proctor_agent.models.violation import ViolationCategory, ViolationEvent
from proctor_agent.stream.frame import Frame


logger = logging.getLogger(__name__)


class ViolationSink(Protocol):
    """Narrow capability the analyzer reports to."""

    def on_violation(self, event: ViolationEvent) -> None:
        ...

    def on_error(self, error: Exception) -> None:
        ...


class FrameAnalyzer:
    """
    Analyze frames with the remote model and emit violation events.

    Attributes:
        confidence_threshold: Global minimum confidence
        default_confidence: Confidence assigned to parsed events
        category_thresholds: Optional per-category minimums
        system_prompt: Instruction text sent ahead of each image

    Example:
        analyzer = FrameAnalyzer(backend, sink=session, confidence_threshold=0.7)
        events = await analyzer.analyze(frame)
    """

    def __init__(
        self,
        backend: ModelBackend,
        sink: ViolationSink,
        confidence_threshold: float = 0.7,
        default_confidence: float = DEFAULT_CONFIDENCE,
        category_thresholds: Optional[Mapping[ViolationCategory, float]] = None,
        system_prompt: Optional[str] = None,
        generation: Optional[GenerationConfig] = None,
        safety: Optional[List[SafetySetting]] = None,
    ) -> None:
        """
        Initialize frame analyzer.

        Args:
            backend: Remote model backend
            sink: Receiver for violations and errors
            confidence_threshold: Global minimum confidence in [0, 1]
            default_confidence: Confidence for every parsed event
            category_thresholds: Per-category minimums (stricter one wins)
            system_prompt: Instruction text; None sends the image alone
            generation: Fixed sampling parameters
            safety: Fixed safety settings
        """
        self.sink = sink
        self.confidence_threshold = confidence_threshold
        self.default_confidence = default_confidence
        self.category_thresholds: Dict[ViolationCategory, float] = dict(category_thresholds or {})
        self.system_prompt = system_prompt

        self._graph = AnalysisGraph(
            backend,
            prompt=lambda: self.system_prompt,
            threshold_for=self.threshold_for,
            default_confidence=lambda: self.default_confidence,
            generation=generation,
            safety=safety,
        )

        # Metrics
        self._analysis_count: int = 0
        self._failure_count: int = 0
        self._emitted_count: int = 0
        self._suppressed_count: int = 0

    def threshold_for(self, event: ViolationEvent) -> float:
        """Minimum confidence required for this event to be emitted."""
        category_threshold = self.category_thresholds.get(event.category)
        if category_threshold is None:
            return self.confidence_threshold
        return max(self.confidence_threshold, category_threshold)

    def configure(
        self,
        confidence_threshold: Optional[float] = None,
        category_thresholds: Optional[Mapping[ViolationCategory, float]] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        """Apply configuration to subsequent analyses."""
        if confidence_threshold is not None:
            self.confidence_threshold = confidence_threshold
        if category_thresholds is not None:
            self.category_thresholds = dict(category_thresholds)
        if system_prompt is not None:
            self.system_prompt = system_prompt

        logger.info(
            f"FrameAnalyzer configured: threshold={self.confidence_threshold}, "
            f"categories={len(self.category_thresholds)}"
        )

    async def analyze(self, frame: Frame) -> List[ViolationEvent]:
        """
        Analyze one frame.

        Failures are reported to sink.on_error and yield [].

        Args:
            frame: Frame to analyze

        Returns:
            Events emitted to the sink, in parse order
        """
        self._analysis_count += 1
        result = await self._graph.run(frame)

        error = result.get("error")
        if error is not None:
            self._failure_count += 1
            self.sink.on_error(error)
            return []

        accepted = result.get("accepted", [])
        self._suppressed_count += result.get("suppressed", 0)

        for event in accepted:
            self._emitted_count += 1
            self.sink.on_violation(event)

        if accepted:
            logger.info(f"Analysis emitted {len(accepted)} violation(s) ({frame!r})")

        return list(accepted)

    def get_metrics(self) -> dict:
        """Get analyzer metrics for observability."""
        return {
            "analysis_count": self._analysis_count,
            "failure_count": self._failure_count,
            "emitted_count": self._emitted_count,
            "suppressed_count": self._suppressed_count,
        }
