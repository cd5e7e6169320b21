import pytest

from mindcare_core.domain.exceptions import (
    NoModelAvailable,
    UpstreamNotFound,
    UpstreamServerError,
    UpstreamUnauthorized,
)
from mindcare_core.domain.models import ChatChoice, ChatMessage, ChatResult
from mindcare_core.engine.model_selector import ModelSelector
from mindcare_core.providers.registry import ModelCandidate


def _ok(model):
    return ChatResult(
        provider="fake",
        model=model,
        choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content="Hi"))],
    )


class ProbeProvider:
    """按模型 ID 返回预设结果的假 Provider。"""

    name = "fake"

    def __init__(self, behaviour):
        self.behaviour = behaviour
        self.calls = []

    def chat(self, req):
        self.calls.append(req.model)
        outcome = self.behaviour.get(req.model)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome if outcome is not None else _ok(req.model)


def _nf(model):
    return UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message=f"{model} gone")


CANDS = [ModelCandidate("model-a", 0), ModelCandidate("model-b", 1)]


def test_probe_skips_not_found_and_pins_next():
    provider = ProbeProvider({"model-a": _nf("model-a")})
    selector = ModelSelector(provider, CANDS)
    assert selector.probe_and_pin() == "model-b"
    assert provider.calls == ["model-a", "model-b"]
    assert selector.current_model() == "model-b"


def test_probe_uses_small_probe_request():
    seen = []

    class Capture(ProbeProvider):
        def chat(self, req):
            seen.append(req)
            return super().chat(req)

    ModelSelector(Capture({}), CANDS).probe_and_pin()
    assert seen[0].max_tokens == 10
    assert seen[0].messages[0].content == "Test"


def test_probe_respects_rank_not_list_order():
    provider = ProbeProvider({})
    selector = ModelSelector(provider, [ModelCandidate("late", 3), ModelCandidate("early", 1)])
    assert selector.probe_and_pin() == "early"
    assert provider.calls == ["early"]


def test_unauthorized_aborts_probing():
    provider = ProbeProvider({"model-a": UpstreamUnauthorized(code="UPSTREAM_UNAUTHORIZED", message="bad key")})
    selector = ModelSelector(provider, CANDS)
    with pytest.raises(UpstreamUnauthorized):
        selector.probe_and_pin()
    assert provider.calls == ["model-a"]


def test_transient_errors_move_to_next_candidate():
    provider = ProbeProvider({"model-a": UpstreamServerError(code="UPSTREAM_SERVER_ERROR", message="503")})
    assert ModelSelector(provider, CANDS).probe_and_pin() == "model-b"


def test_no_candidate_left_raises():
    provider = ProbeProvider({"model-a": _nf("model-a"), "model-b": _nf("model-b")})
    selector = ModelSelector(provider, CANDS)
    with pytest.raises(NoModelAvailable) as exc:
        selector.probe_and_pin()
    assert exc.value.code == "NO_MODEL_AVAILABLE"
    assert exc.value.extra["tried"] == ["model-a", "model-b"]
    # 每个候选只探测一次
    assert provider.calls == ["model-a", "model-b"]


def test_demote_unpins_and_skips_retired():
    provider = ProbeProvider({})
    selector = ModelSelector(provider, CANDS)
    assert selector.probe_and_pin() == "model-a"
    selector.demote("model-a")
    assert selector.current_model() == "model-b"
    assert selector.probe_and_pin() == "model-b"
    assert provider.calls == ["model-a", "model-b"]


def test_all_retired_candidates_get_another_chance():
    provider = ProbeProvider({})
    selector = ModelSelector(provider, CANDS)
    selector.demote("model-a")
    selector.demote("model-b")
    assert selector.probe_and_pin() == "model-a"


def test_reset_clears_state():
    selector = ModelSelector(ProbeProvider({}), CANDS)
    selector.demote("model-a")
    selector.reset()
    assert selector.current_model() == "model-a"


def test_empty_candidates_rejected():
    with pytest.raises(ValueError):
        ModelSelector(ProbeProvider({}), [])
