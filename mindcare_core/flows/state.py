"""State definition for the orchestration graph."""

from __future__ import annotations

import threading
from typing import List, Literal, Optional, TypedDict

from mindcare_core.domain.models import ConversationTurn, CrisisAssessment, ValidationResult

Phase = Literal["idle", "crisis_check", "crisis_path", "generation_path", "validated", "done", "failed"]


class OrchestrationState(TypedDict, total=False):
    """State carried through a single ``respond`` call; discarded afterwards."""

    trace_id: str
    user_text: str
    history: List[ConversationTurn]
    cancel_event: Optional[threading.Event]
    phase: Phase
    assessment: Optional[CrisisAssessment]
    response: Optional[str]
    model: Optional[str]
    used_fallback: bool
    failure_message: Optional[str]
    error_code: Optional[str]
    validation: Optional[ValidationResult]
    replaced: bool
