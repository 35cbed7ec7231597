"""Gemini REST adapter: one (credential, model) call for text or image synthesis.

Two request shapes are supported. The v1beta ``generateContent`` interface is
tried first; when it reports a rate-limit/overload condition the same
credential and model are retried through the older v1 interface before the
pair is given up on. That inner fallback never consumes a rotation attempt.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import requests

from siteforge import rotation
from siteforge.errors import EmptyResponseError, FatalProviderError, TransientProviderError

log = logging.getLogger(__name__)

GEMINI_BASE = "https://generativelanguage.googleapis.com"
SAFETY_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "IMAGE_SAFETY", "SPII"}

T = TypeVar("T")


class GenAIInterface:
    """Current ``v1beta`` interface with thinking disabled for text calls."""

    name = "genai"
    version = "v1beta"

    def endpoint(self, model: str) -> str:
        return f"{GEMINI_BASE}/{self.version}/models/{model}:generateContent"

    def text_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"thinkingConfig": {"thinkingBudget": 0}},
        }

    def image_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }


class LegacyInterface(GenAIInterface):
    """Older ``v1`` interface; plain contents, no generation config."""

    name = "legacy"
    version = "v1"

    def text_body(self, prompt: str) -> Dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

    def image_body(self, prompt: str) -> Dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}


class InterfaceFallback:
    """Inner retry policy: walk interface strategies for one (credential, model) pair.

    Only errors the rotation layer would call transient trigger the next
    strategy. Fatal errors and empty payloads propagate at once.
    """

    def __init__(self, strategies: Sequence[GenAIInterface], is_retryable: Callable[[BaseException], bool] = rotation.is_retryable) -> None:
        if not strategies:
            raise ValueError("at least one interface strategy is required")
        self.strategies = list(strategies)
        self.is_retryable = is_retryable

    def run(self, call: Callable[[GenAIInterface], T], label: str = "") -> T:
        last_error: Optional[BaseException] = None
        for idx, strategy in enumerate(self.strategies):
            try:
                return call(strategy)
            except Exception as exc:
                if not self.is_retryable(exc):
                    raise
                last_error = exc
                if idx < len(self.strategies) - 1:
                    log.warning(
                        "gemini %s interface=%s error: %s; falling back to %s interface",
                        label,
                        strategy.name,
                        str(exc)[:200],
                        self.strategies[idx + 1].name,
                    )
        assert last_error is not None
        raise last_error


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except Exception:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        err = data["error"]
        parts = [str(err.get("status") or ""), str(err.get("message") or "")]
        msg = " ".join(p for p in parts if p).strip()
        if msg:
            return msg[:400]
    try:
        return (resp.text or "")[:400] or f"HTTP {resp.status_code}"
    except Exception:
        return f"HTTP {resp.status_code}"


def _scrub(text: str, credential: str) -> str:
    if not credential:
        return text
    return text.replace(credential, rotation.mask_credential(credential))


def _post(endpoint: str, credential: str, body: Dict[str, Any], timeout: int) -> Dict[str, Any]:
    # Key goes in a header, never the URL
    headers = {"x-goog-api-key": credential, "Content-Type": "application/json"}
    try:
        resp = requests.post(endpoint, headers=headers, json=body, timeout=timeout)
    except requests.RequestException as exc:
        detail = _scrub(str(exc), credential)
        msg = f"request error: {detail}"
        if rotation.is_rate_limit_signal(None, detail):
            raise TransientProviderError(msg) from exc
        raise FatalProviderError(msg) from exc

    if resp.status_code != 200:
        msg = _scrub(_error_message(resp), credential)
        if rotation.is_rate_limit_signal(resp.status_code, msg):
            raise TransientProviderError(f"HTTP {resp.status_code}: {msg}", status=resp.status_code)
        raise FatalProviderError(f"HTTP {resp.status_code}: {msg}", status=resp.status_code)

    try:
        data = resp.json()
    except Exception as exc:
        raise FatalProviderError("non-JSON response body") from exc
    if not isinstance(data, dict):
        raise FatalProviderError("unexpected response shape")
    return data


def _parts(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for cand in payload.get("candidates") or []:
        if not isinstance(cand, dict):
            continue
        content = cand.get("content") or {}
        for part in content.get("parts") or []:
            if isinstance(part, dict):
                out.append(part)
    return out


def blocked_reason(payload: Dict[str, Any]) -> Optional[str]:
    feedback = payload.get("promptFeedback") or {}
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        return str(feedback["blockReason"])
    for cand in payload.get("candidates") or []:
        if isinstance(cand, dict) and str(cand.get("finishReason") or "").upper() in SAFETY_FINISH_REASONS:
            return str(cand["finishReason"])
    return None


def extract_text(payload: Dict[str, Any]) -> str:
    """Join every text part of the first usable candidate set; raise when nothing usable came back."""
    reason = blocked_reason(payload)
    if reason:
        raise EmptyResponseError(f"response blocked: {reason}")
    text = "".join(p["text"] for p in _parts(payload) if isinstance(p.get("text"), str))
    if not text.strip():
        raise EmptyResponseError("empty text response")
    return text


def extract_image(payload: Dict[str, Any]) -> bytes:
    reason = blocked_reason(payload)
    if reason:
        raise EmptyResponseError(f"response blocked: {reason}")
    for part in _parts(payload):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            try:
                return base64.b64decode(inline["data"])
            except (binascii.Error, ValueError, TypeError) as exc:
                raise EmptyResponseError("image payload is not valid base64") from exc
    raise EmptyResponseError("no image data returned")


class GeminiClient:
    """Provider adapter: normalizes both interfaces into ``str`` (text) or ``bytes`` (image)."""

    def __init__(self, timeout: int = 120, interfaces: Optional[Sequence[GenAIInterface]] = None) -> None:
        self.timeout = timeout
        self.fallback = InterfaceFallback(interfaces or (GenAIInterface(), LegacyInterface()))

    def invoke_text(self, credential: str, model: str, prompt: str) -> str:
        def _call(iface: GenAIInterface) -> str:
            data = _post(iface.endpoint(model), credential, iface.text_body(prompt), self.timeout)
            return extract_text(data)

        text = self.fallback.run(_call, label="text")
        log.info("gemini text ok model=%s key=%s chars=%d", model, rotation.mask_credential(credential), len(text))
        return text

    def invoke_image(self, credential: str, model: str, prompt: str) -> bytes:
        def _call(iface: GenAIInterface) -> bytes:
            data = _post(iface.endpoint(model), credential, iface.image_body(prompt), self.timeout)
            return extract_image(data)

        blob = self.fallback.run(_call, label="image")
        log.info("gemini image ok model=%s key=%s bytes=%d", model, rotation.mask_credential(credential), len(blob))
        return blob

    def invoke(self, kind: str, credential: str, model: str, prompt: str):
        if kind == "image":
            return self.invoke_image(credential, model, prompt)
        return self.invoke_text(credential, model, prompt)
