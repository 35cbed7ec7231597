import pytest

from siteforge import rotation
from siteforge.errors import ConfigurationError, EmptyResponseError, FatalProviderError, TransientProviderError
from siteforge.invoker import IMAGE, TEXT, GenerationRequest, ResilientInvoker
from siteforge.rotation import build_candidates


class ScriptedAdapter:
    """Returns or raises per (credential, model) according to a script."""

    def __init__(self, script):
        self.script = script
        self.calls = []

    def invoke(self, kind, credential, model, prompt):
        self.calls.append((credential, model))
        result = self.script.get((credential, model), "ok")
        if isinstance(result, BaseException):
            raise result
        return result


def _request(n, kind=TEXT):
    cands = build_candidates([f"key-{i}-xxxxxxxx" for i in range(n)], ["m"])
    return GenerationRequest(kind=kind, payload="prompt", candidates=cands)


@pytest.mark.parametrize("n", [1, 2, 4])
def test_only_last_candidate_succeeds(n):
    req = _request(n)
    script = {(c.credential, c.model): TransientProviderError("quota", status=429) for c in req.candidates[:-1]}
    last = req.candidates[-1]
    script[(last.credential, last.model)] = "payload"
    adapter = ScriptedAdapter(script)

    outcome = ResilientInvoker(adapter).run(req)

    assert outcome.ok is True
    assert outcome.content == "payload"
    assert outcome.candidate == last
    assert outcome.index == n - 1
    assert len(adapter.calls) == n


def test_mixed_retryable_failures_do_not_change_attribution():
    req = _request(3)
    c0, c1, c2 = req.candidates
    adapter = ScriptedAdapter(
        {
            (c0.credential, c0.model): EmptyResponseError("blocked"),
            (c1.credential, c1.model): RuntimeError("model overloaded"),
            (c2.credential, c2.model): "done",
        }
    )
    outcome = ResilientInvoker(adapter).run(req)
    assert outcome.ok and outcome.candidate == c2
    assert [a.error_kind for a in outcome.attempts] == [rotation.EMPTY, rotation.TRANSIENT]


def test_fatal_error_stops_rotation():
    req = _request(3)
    first = req.candidates[0]
    adapter = ScriptedAdapter({(first.credential, first.model): FatalProviderError("HTTP 400", status=400)})

    outcome = ResilientInvoker(adapter).run(req)

    assert outcome.ok is False
    assert adapter.calls == [(first.credential, first.model)]
    assert outcome.exhausted is False
    with pytest.raises(FatalProviderError):
        outcome.raise_error()


def test_all_transient_failures_exhaust():
    req = _request(2, kind=IMAGE)
    adapter = ScriptedAdapter({(c.credential, c.model): TransientProviderError("429", status=429) for c in req.candidates})
    outcome = ResilientInvoker(adapter).run(req)
    assert outcome.ok is False
    assert outcome.exhausted is True
    assert len(outcome.attempts) == 2
    with pytest.raises(TransientProviderError):
        outcome.raise_error("Image generation")


def test_zero_candidates_is_configuration_error():
    adapter = ScriptedAdapter({})
    with pytest.raises(ConfigurationError):
        ResilientInvoker(adapter).run(GenerationRequest(kind=TEXT, payload="p", candidates=()))
    assert adapter.calls == []


def test_request_is_immutable_and_validates_kind():
    req = GenerationRequest(kind=TEXT, payload="p", candidates=list(build_candidates(["k"], ["m"])))
    assert isinstance(req.candidates, tuple)
    with pytest.raises(Exception):
        req.payload = "other"
    with pytest.raises(ValueError):
        GenerationRequest(kind="video", payload="p")
