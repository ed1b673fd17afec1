"""
Analysis Graph
==============

LangGraph workflow for a single analysis cycle.

LangGraph is used for CONTROL FLOW only: the visual understanding lives in
the remote model, and every node here is plain orchestration.

Graph Structure:
    START → build_request → invoke_model ─┬─ failed → END
                                          └─ ok → extract_violations → gate_confidence → END

Nodes:
    - build_request: Frame → AnalysisRequest (prompt + inline image)
    - invoke_model: AnalysisRequest → raw response (the only I/O)
    - extract_violations: Response text parts → parsed events
    - gate_confidence: Drop events below their threshold

Design Rules:
    - Nodes never raise for remote failures; the error travels in state
    - Parse order is preserved through gating
    - The graph holds no per-frame state between invocations
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypedDict

from langgraph.graph import StateGraph, END

from proctor_agent.analysis.backend import ModelBackend, ModelError
from proctor_agent.analysis.parser import extract_violations
from proctor_agent.models.request import AnalysisRequest, GenerationConfig, SafetySetting
from proctor_agent.models.violation import ViolationEvent
from proctor_agent.stream.frame import Frame


logger = logging.getLogger(__name__)


class AnalysisGraphState(TypedDict, total=False):
    """
    State passed through the analysis graph.

    Attributes:
        frame: Frame under analysis
        request: Payload built for the model
        response: Raw model response
        error: Remote failure, if any
        texts: Text parts of the first candidate
        parsed: Events extracted from the texts
        accepted: Events that passed confidence gating
        suppressed: Number of events dropped by gating
    """
    frame: Frame
    request: Optional[AnalysisRequest]
    response: Optional[Dict[str, Any]]
    error: Optional[ModelError]
    texts: List[str]
    parsed: List[ViolationEvent]
    accepted: List[ViolationEvent]
    suppressed: int


def response_texts(response: Any) -> List[str]:
    """
    Collect text parts of the first candidate in a generateContent reply.

    Missing or malformed structure (including a non-object body) yields []
    rather than an error.
    """
    if not isinstance(response, dict):
        return []

    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []

    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return []

    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]
    ]


class AnalysisGraph:
    """
    Compiled LangGraph workflow for one frame.

    Policy (prompt, thresholds, confidence) is read through callables so
    that configuration changes apply to the next cycle without rebuilding
    the graph.
    """

    def __init__(
        self,
        backend: ModelBackend,
        prompt: Callable[[], Optional[str]],
        threshold_for: Callable[[ViolationEvent], float],
        default_confidence: Callable[[], float],
        generation: Optional[GenerationConfig] = None,
        safety: Optional[List[SafetySetting]] = None,
    ) -> None:
        """
        Initialize the analysis graph.

        Args:
            backend: Remote model backend
            prompt: Returns the current instruction text
            threshold_for: Returns the minimum confidence for an event
            default_confidence: Returns the confidence assigned to parsed events
            generation: Fixed sampling parameters
            safety: Fixed safety settings
        """
        self.backend = backend
        self._prompt = prompt
        self._threshold_for = threshold_for
        self._default_confidence = default_confidence
        self.generation = generation or GenerationConfig()
        self.safety = safety if safety is not None else [SafetySetting()]

        self._graph = self._build_graph()

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(AnalysisGraphState)

        workflow.add_node("build_request", self._build_request_node)
        workflow.add_node("invoke_model", self._invoke_model_node)
        workflow.add_node("extract_violations", self._extract_violations_node)
        workflow.add_node("gate_confidence", self._gate_confidence_node)

        workflow.set_entry_point("build_request")
        workflow.add_edge("build_request", "invoke_model")
        workflow.add_conditional_edges(
            "invoke_model",
            self._route_after_model,
            {"failed": END, "ok": "extract_violations"},
        )
        workflow.add_edge("extract_violations", "gate_confidence")
        workflow.add_edge("gate_confidence", END)

        return workflow.compile()

    def _build_request_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        frame = state["frame"]
        request = AnalysisRequest.for_image(
            frame.image_b64,
            mime_type=frame.mime_type,
            prompt=self._prompt(),
            generation=self.generation,
            safety=self.safety,
        )
        return {"request": request}

    async def _invoke_model_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        try:
            response = await self.backend.generate_content(state["request"])
        except ModelError as e:
            logger.error(f"Model call failed ({state['frame']!r}): {e}")
            return {"error": e, "response": None}
        return {"response": response, "error": None}

    def _route_after_model(self, state: AnalysisGraphState) -> str:
        return "failed" if state.get("error") is not None else "ok"

    def _extract_violations_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        texts = response_texts(state.get("response") or {})
        confidence = self._default_confidence()

        parsed: List[ViolationEvent] = []
        for text in texts:
            parsed.extend(extract_violations(text, confidence=confidence))

        return {"texts": texts, "parsed": parsed}

    def _gate_confidence_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        accepted: List[ViolationEvent] = []
        suppressed = 0

        for event in state.get("parsed", []):
            threshold = self._threshold_for(event)
            if event.confidence >= threshold:
                accepted.append(event)
            else:
                suppressed += 1
                logger.debug(
                    f"Suppressed '{event.type}': "
                    f"confidence={event.confidence:.2f} < {threshold:.2f}"
                )

        return {"accepted": accepted, "suppressed": suppressed}

    async def run(self, frame: Frame) -> AnalysisGraphState:
        """
        Run one analysis cycle.

        Args:
            frame: Frame to analyze

        Returns:
            Final graph state (check "error" before "accepted")
        """
        return await self._graph.ainvoke({"frame": frame})
