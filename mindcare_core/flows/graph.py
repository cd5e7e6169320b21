"""LangGraph construction and node implementations.

crisis_check -> crisis_path -----------> validate -> END
             -> generation_path -------> validate -> END
                                 \\----> failed   -> END
"""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING, Dict, Any

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from mindcare_core.domain.exceptions import BusinessError, ValidationAdvisory
from mindcare_core.flows.state import OrchestrationState
from mindcare_core.infrastructure.logging.logger import logger

if TYPE_CHECKING:
    from mindcare_core.agents.orchestrator import ConversationOrchestrator


GENERIC_FAILURE_MESSAGE = (
    "I'm sorry, the assistant is temporarily unavailable. Please try again in a moment. "
    "If you need to talk to someone right now, you can call or text 988."
)

MESSAGE_TOO_LONG_TEXT = (
    "That's a lot to share at once, and I want to give it proper attention. "
    "Could you send it to me in a few shorter messages?"
)

SAFE_FALLBACK_MESSAGE = (
    "I hear you, and I want to make sure I respond in a helpful way. "
    "It might help to talk this through with someone you trust, like a counselor, friend, or family member. "
    "I'm here to listen if you'd like to share more."
)


def _log(level: int, message: str, state: OrchestrationState, **fields: Any) -> None:
    payload: Dict[str, Any] = {"trace_id": state.get("trace_id"), "phase": state.get("phase")}
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})


def crisis_check_node(state: OrchestrationState, orchestrator: ConversationOrchestrator) -> OrchestrationState:
    state["phase"] = "crisis_check"
    # only the latest user turn is scanned, never the history
    assessment = orchestrator.detector.assess(state["user_text"])
    state["assessment"] = assessment
    if assessment.triggered:
        _log(
            logging.WARNING,
            "Crisis indicators detected",
            state,
            severity=assessment.matched_severity.value,
            patterns=len(assessment.matched_patterns),
        )
    return state


def crisis_path_node(state: OrchestrationState, orchestrator: ConversationOrchestrator) -> OrchestrationState:
    state["phase"] = "crisis_path"
    text, model, used_fallback = orchestrator.crisis_response(state["user_text"], cancel_event=state.get("cancel_event"))
    state["response"] = text
    state["model"] = model
    state["used_fallback"] = used_fallback
    _log(logging.INFO, "Crisis path completed", state, model=model, used_fallback=used_fallback)
    return state


def generation_path_node(state: OrchestrationState, orchestrator: ConversationOrchestrator) -> OrchestrationState:
    state["phase"] = "generation_path"
    if len(state["user_text"]) > orchestrator.max_message_chars:
        state["phase"] = "failed"
        state["error_code"] = "MESSAGE_TOO_LONG"
        state["failure_message"] = MESSAGE_TOO_LONG_TEXT
        _log(logging.INFO, "User message too long", state, length=len(state["user_text"]))
        return state
    try:
        text, model = orchestrator.generate(
            state["user_text"],
            state.get("history") or [],
            cancel_event=state.get("cancel_event"),
            trace_id=state.get("trace_id"),
        )
    except BusinessError as exc:
        state["phase"] = "failed"
        state["error_code"] = exc.code
        _log(logging.ERROR, "Generation failed", state, code=exc.code, error=exc.message)
        return state
    except Exception:
        state["phase"] = "failed"
        state["error_code"] = "INTERNAL_ERROR"
        logger.exception(
            "Generation failed unexpectedly",
            extra={"extra": {"trace_id": state.get("trace_id"), "phase": "generation_path"}},
        )
        return state
    state["response"] = text
    state["model"] = model
    return state


def failed_node(state: OrchestrationState) -> OrchestrationState:
    state["phase"] = "failed"
    # raw upstream errors never reach the user
    state["response"] = state.get("failure_message") or GENERIC_FAILURE_MESSAGE
    state["validation"] = None
    return state


def validate_node(state: OrchestrationState, orchestrator: ConversationOrchestrator) -> OrchestrationState:
    crisis = bool(state.get("assessment") and state["assessment"].triggered)
    state["phase"] = "validated"
    result = orchestrator.validator.validate(state.get("response") or "")
    state["validation"] = result
    state["replaced"] = False
    if not result.is_valid:
        issues = sorted(issue.value for issue in result.issues)
        _log(logging.WARNING, "Validation advisory", state, issues=issues, length=result.length, crisis=crisis)
        warnings.warn(f"Assistant reply flagged: {', '.join(issues)}", ValidationAdvisory, stacklevel=2)
        if orchestrator.enforce_validation:
            state["response"] = orchestrator.crisis_fallback() if crisis else SAFE_FALLBACK_MESSAGE
            state["replaced"] = True
            _log(logging.WARNING, "Reply replaced by safe fallback", state, crisis=crisis)
    state["phase"] = "done"
    return state


def crisis_router(state: OrchestrationState) -> str:
    assessment = state.get("assessment")
    if assessment is not None and assessment.triggered:
        return "crisis"
    return "generate"


def generation_router(state: OrchestrationState) -> str:
    if state.get("phase") == "failed":
        return "failed"
    return "validate"


def build_graph(orchestrator: ConversationOrchestrator) -> CompiledStateGraph:
    graph = StateGraph(OrchestrationState)
    graph.add_node("crisis_check", lambda s: crisis_check_node(s, orchestrator))
    graph.add_node("crisis_path", lambda s: crisis_path_node(s, orchestrator))
    graph.add_node("generation_path", lambda s: generation_path_node(s, orchestrator))
    graph.add_node("validate", lambda s: validate_node(s, orchestrator))
    graph.add_node("failed", failed_node)
    graph.set_entry_point("crisis_check")
    graph.add_conditional_edges(
        "crisis_check",
        crisis_router,
        {"crisis": "crisis_path", "generate": "generation_path"},
    )
    graph.add_edge("crisis_path", "validate")
    graph.add_conditional_edges(
        "generation_path",
        generation_router,
        {"failed": "failed", "validate": "validate"},
    )
    graph.add_edge("validate", END)
    graph.add_edge("failed", END)
    return graph.compile()
