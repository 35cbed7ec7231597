from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, MutableMapping, Optional, Tuple, Union

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
FALLBACK_IMAGE_MODELS = ("gemini-2.5-flash-image", "gemini-2.0-flash-exp-image-generation")
CREDENTIAL_ENV_VARS = ("GEMINI_API_KEY", "GEMINI_API_KEY_BACKUP1", "GEMINI_API_KEY_BACKUP2")
_PLACEHOLDER_KEYS = {"your_api_key_here"}

log = logging.getLogger(__name__)


def parse_env_lines(text: str) -> Dict[str, str]:
    """Parse ``KEY=value`` lines, skipping blanks and comments and unquoting values."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, val = line.partition("=")
        key, val = key.strip(), val.strip()
        if len(val) >= 2 and val[0] == val[-1] and val[0] in "\"'":
            val = val[1:-1]
        if key:
            values[key] = val
    return values


def load_env_file(path: Union[str, Path] = ".env", environ: Optional[MutableMapping[str, str]] = None) -> int:
    """Copy unset variables from a dotenv file into ``environ``; returns how many were set.

    Variables already present win over the file. A missing or unreadable file is
    not an error.
    """
    env = os.environ if environ is None else environ
    env_path = Path(path)
    if not env_path.is_file():
        return 0
    try:
        values = parse_env_lines(env_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        log.warning("Could not read %s: %r", env_path, exc)
        return 0
    added = 0
    for key, val in values.items():
        if key not in env:
            env[key] = val
            added += 1
    return added


def _env_int(env, name: str, default: int) -> int:
    try:
        return int(env.get(name) or default)
    except Exception:
        return default


def _dedupe(items) -> Tuple[str, ...]:
    seen = []
    for item in items:
        item = (item or "").strip()
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration handed to the pipeline.

    Nothing in the generation core reads the environment directly; tests build
    a ``Settings`` by hand and pass it in.
    """

    credentials: Tuple[str, ...] = ()
    text_models: Tuple[str, ...] = (DEFAULT_TEXT_MODEL,)
    image_models: Tuple[str, ...] = _dedupe((DEFAULT_IMAGE_MODEL,) + FALLBACK_IMAGE_MODELS)
    projects_dir: Path = Path("projects")
    timeout_secs: int = 120
    manifest_max_attempts: int = 3
    public_base_url: str = "http://localhost:8787"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        env = os.environ if environ is None else environ
        credentials = _dedupe(
            env.get(name, "") for name in CREDENTIAL_ENV_VARS if env.get(name, "").strip() not in _PLACEHOLDER_KEYS
        )
        text_models = _dedupe((env.get("TEXT_MODEL") or DEFAULT_TEXT_MODEL).split(","))
        image_models = _dedupe(((env.get("IMAGE_MODEL") or DEFAULT_IMAGE_MODEL),) + FALLBACK_IMAGE_MODELS)
        return cls(
            credentials=credentials,
            text_models=text_models or (DEFAULT_TEXT_MODEL,),
            image_models=image_models,
            projects_dir=Path(env.get("PROJECTS_DIR") or "projects"),
            timeout_secs=max(1, _env_int(env, "LLM_TIMEOUT_SECS", 120)),
            manifest_max_attempts=max(1, _env_int(env, "MANIFEST_MAX_ATTEMPTS", 3)),
            public_base_url=(env.get("PUBLIC_BASE_URL") or "http://localhost:8787").rstrip("/"),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials)
