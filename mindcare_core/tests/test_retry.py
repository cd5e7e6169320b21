import threading

import pytest

from mindcare_core.domain.exceptions import (
    ConfigurationError,
    NoModelAvailable,
    RequestCancelled,
    RetryExhaustedError,
    UpstreamBadRequest,
    UpstreamNotFound,
    UpstreamRateLimited,
    UpstreamServerError,
    UpstreamUnauthorized,
)
from mindcare_core.domain.models import ChatChoice, ChatMessage, ChatResult
from mindcare_core.engine.model_selector import ModelSelector
from mindcare_core.engine.retry import Fatal, Repin, Retry, RetryController, evaluate_attempt
from mindcare_core.providers.registry import ModelCandidate


def _rate_limited():
    return UpstreamRateLimited(code="UPSTREAM_RATE_LIMITED", message="slow down")


class Script:
    """依次抛出/返回预设结果的操作，记录每次收到的模型。"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.models = []

    def __call__(self, model):
        self.models.append(model)
        item = self.outcomes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_retries_rate_limit_with_linear_backoff():
    sleeps = []
    op = Script(_rate_limited(), _rate_limited(), "ok")
    result = RetryController(sleep=sleeps.append).with_retry(op, max_attempts=3, base_delay=1.0)
    assert result == "ok"
    assert sleeps == [1.0, 2.0]
    assert all(b > a for a, b in zip(sleeps, sleeps[1:]))


def test_unauthorized_is_not_retried():
    sleeps = []
    op = Script(UpstreamUnauthorized(code="UPSTREAM_UNAUTHORIZED", message="bad key"), "never")
    with pytest.raises(UpstreamUnauthorized):
        RetryController(sleep=sleeps.append).with_retry(op)
    assert len(op.models) == 1
    assert sleeps == []


def test_bad_request_is_not_retried():
    op = Script(UpstreamBadRequest(code="UPSTREAM_BAD_REQUEST", message="malformed"))
    with pytest.raises(UpstreamBadRequest):
        RetryController(sleep=lambda _: None).with_retry(op)
    assert len(op.models) == 1


def test_configuration_error_is_fatal():
    op = Script(ConfigurationError(code="MISSING_API_KEY", message="no key"))
    with pytest.raises(ConfigurationError):
        RetryController(sleep=lambda _: None).with_retry(op)


def test_exhaustion_reports_attempts_and_last_error():
    sleeps = []
    last = UpstreamServerError(code="UPSTREAM_SERVER_ERROR", message="third")
    op = Script(_rate_limited(), UpstreamServerError(code="UPSTREAM_SERVER_ERROR", message="second"), last)
    with pytest.raises(RetryExhaustedError) as exc:
        RetryController(sleep=sleeps.append, base_delay=0.5).with_retry(op, max_attempts=3)
    assert exc.value.attempts == 3
    assert exc.value.last_error is last
    assert exc.value.code == "RETRY_EXHAUSTED"
    # 最后一次失败后不再等待
    assert sleeps == [0.5, 1.0]


def test_not_found_repins_and_retries_with_new_model():
    class Prober:
        name = "fake"

        def chat(self, req):
            if req.model == "model-a":
                raise UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message="gone")
            return ChatResult(
                provider="fake",
                model=req.model,
                choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content="Hi"))],
            )

    selector = ModelSelector(Prober(), [ModelCandidate("model-a", 0), ModelCandidate("model-b", 1)])
    sleeps = []
    op = Script(UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message="gone"), "reply")
    result = RetryController(selector=selector, sleep=sleeps.append).with_retry(op, max_attempts=1)
    assert result == "reply"
    assert op.models == ["model-a", "model-b"]
    assert sleeps == []
    assert selector.current_model() == "model-b"


def test_repin_failure_propagates():
    class NothingWorks:
        name = "fake"

        def chat(self, req):
            raise UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message="gone")

    selector = ModelSelector(NothingWorks(), [ModelCandidate("model-a", 0)])
    op = Script(UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message="gone"))
    with pytest.raises(NoModelAvailable):
        RetryController(selector=selector, sleep=lambda _: None).with_retry(op)


def test_cancelled_before_first_attempt():
    event = threading.Event()
    event.set()
    op = Script("never")
    with pytest.raises(RequestCancelled):
        RetryController().with_retry(op, cancel_event=event)
    assert op.models == []


def test_cancel_between_attempts():
    event = threading.Event()

    def op(model):
        event.set()
        raise _rate_limited()

    with pytest.raises(RequestCancelled):
        RetryController(base_delay=5.0).with_retry(op, max_attempts=3, cancel_event=event)


def test_evaluate_attempt_tags():
    nf = UpstreamNotFound(code="UPSTREAM_NOT_FOUND", message="gone")
    assert isinstance(evaluate_attempt(nf, 1, 1.0, repinned=False, can_repin=True), Repin)
    # 已经重选过一次，退化为普通重试
    again = evaluate_attempt(nf, 2, 1.0, repinned=True, can_repin=True)
    assert isinstance(again, Retry) and again.delay == 2.0
    assert isinstance(evaluate_attempt(nf, 1, 1.0, repinned=False, can_repin=False), Retry)
    assert isinstance(evaluate_attempt(RuntimeError("boom"), 1, 1.0, repinned=False, can_repin=True), Fatal)
