from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from siteforge.errors import ExtractionError
from siteforge.models import ArtifactManifest

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
PREVIEW_CHARS = 200


def _candidates(text: str) -> List[str]:
    out = []
    m = _FENCE_RE.search(text)
    if m and m.group(1).strip():
        out.append(m.group(1))
    out.append(text)
    return out


def _strict_object(candidate: str) -> Optional[Any]:
    """Strict parse of the whole candidate, then of its first-``{``-to-last-``}`` slice.

    Malformed JSON is never patched up; a bad slice simply yields None.
    """
    try:
        return json.loads(candidate)
    except ValueError:
        pass
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(candidate[start : end + 1])
    except ValueError:
        return None


def extract_json_object(raw_text: str) -> dict:
    """Pull a JSON object out of model output that may carry fences or prose around it."""
    text = raw_text or ""
    for candidate in _candidates(text):
        data = _strict_object(candidate)
        if isinstance(data, dict):
            return data
    raise ExtractionError("No JSON object found in model output", length=len(text), preview=text[:PREVIEW_CHARS])


def extract_manifest(raw_text: str) -> ArtifactManifest:
    return ArtifactManifest.from_raw(extract_json_object(raw_text))


def serialize_manifest(manifest: ArtifactManifest) -> str:
    return manifest.to_json()
