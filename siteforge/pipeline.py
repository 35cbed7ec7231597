"""The three phases of a site build: spec, assets, build.

Every phase reads and writes through the project store and returns a plain
envelope instead of raising: ``{"ok": True, ...}`` on success or
``{"ok": False, "error": ..., "status": ...}`` on failure.
"""
from __future__ import annotations

import datetime as dt
import logging
import os
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from siteforge.assets import AssetResolver
from siteforge.brief import resolve_brief
from siteforge.config import Settings
from siteforge.errors import ConfigurationError, ExtractionError, SiteforgeError, UnknownProjectError
from siteforge.gemini_client import GeminiClient
from siteforge.invoker import TEXT, Adapter, GenerationRequest, ResilientInvoker
from siteforge.llm_parsing import extract_manifest
from siteforge.llm_prompts import build_generation_prompt
from siteforge.models import ArtifactManifest, UserBrief
from siteforge.repair import repair_manifest
from siteforge.rotation import RotationPolicy, build_candidates
from siteforge.store import ProjectStore
from siteforge.substitution import apply_substitutions, unresolved_tokens

log = logging.getLogger(__name__)

Envelope = Dict[str, Any]


def _status_for(exc: BaseException) -> int:
    if isinstance(exc, ConfigurationError):
        return 503
    if isinstance(exc, UnknownProjectError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    return 500


class SitePipeline:
    def __init__(
        self,
        settings: Settings,
        adapter: Optional[Adapter] = None,
        store: Optional[ProjectStore] = None,
        policy: Optional[RotationPolicy] = None,
    ) -> None:
        self.settings = settings
        self.adapter = adapter or GeminiClient(timeout=settings.timeout_secs)
        self.store = store or ProjectStore(settings.projects_dir)
        self.invoker = ResilientInvoker(self.adapter, policy)
        self.text_candidates = build_candidates(settings.credentials, settings.text_models)
        self.image_candidates = build_candidates(settings.credentials, settings.image_models)

    def _failure(self, phase: str, exc: BaseException) -> Envelope:
        status = _status_for(exc)
        if isinstance(exc, SiteforgeError):
            log.error("%s failed: %s", phase, exc)
        else:
            log.exception("%s failed unexpectedly", phase)
        return {"ok": False, "error": str(exc) or exc.__class__.__name__, "status": status}

    def synthesize_manifest(self, brief: UserBrief) -> ArtifactManifest:
        """Ask the text model for a manifest, re-asking with a strict-JSON reminder when extraction fails."""
        resolved = resolve_brief(brief)
        attempts = self.settings.manifest_max_attempts
        last_error: Optional[ExtractionError] = None
        for attempt in range(1, attempts + 1):
            prompt = build_generation_prompt(resolved, strict=attempt > 1)
            outcome = self.invoker.run(GenerationRequest(kind=TEXT, payload=prompt, candidates=self.text_candidates))
            if not outcome.ok:
                outcome.raise_error("Text generation")
            try:
                return extract_manifest(outcome.content)
            except ExtractionError as exc:
                last_error = exc
                log.warning("manifest extraction attempt %d/%d failed: %s", attempt, attempts, exc)
        assert last_error is not None
        raise last_error

    def generate_spec(self, brief: Union[UserBrief, Mapping[str, Any], None]) -> Envelope:
        try:
            user_brief = brief if isinstance(brief, UserBrief) else UserBrief.model_validate(dict(brief or {}))
            manifest = self.synthesize_manifest(user_brief)
            manifest = repair_manifest(manifest, user_brief, year=dt.date.today().year)
            project_id = self.store.new_id()
            self.store.save_manifest(project_id, manifest)
        except Exception as exc:
            return self._failure("generate-spec", exc)
        log.info("generate-spec ok id=%s files=%d", project_id, len(manifest.files))
        return {"ok": True, "id": project_id}

    def generate_assets(self, project_id: Optional[str]) -> Envelope:
        if not project_id:
            return {"ok": False, "error": "Missing id", "status": 400}
        try:
            manifest = self.store.load_manifest(project_id)
            resolver = AssetResolver(self.invoker, self.image_candidates, self.store)
            mapping = resolver.resolve(project_id, manifest)
            manifest.files = apply_substitutions(manifest.files, mapping)
            leftover = unresolved_tokens(manifest.files)
            if leftover:
                log.warning("generate-assets id=%s left unresolved tokens: %s", project_id, ", ".join(sorted(leftover)))
            self.store.save_manifest(project_id, manifest)
        except Exception as exc:
            return self._failure("generate-assets", exc)
        log.info("generate-assets ok id=%s assets=%d", project_id, len(mapping))
        return {"ok": True, "id": project_id}

    def build(self, project_id: Optional[str]) -> Envelope:
        if not project_id:
            return {"ok": False, "error": "Missing id", "status": 400}
        try:
            self.store.build(project_id)
        except Exception as exc:
            return self._failure("build", exc)
        base = self.settings.public_base_url
        return {
            "ok": True,
            "id": project_id,
            "previewUrl": f"{base}/preview/{project_id}/build/index.html",
            "downloadUrl": f"{base}/download/{project_id}",
        }

    def health(self) -> Envelope:
        return {
            "ok": True,
            "textModels": list(self.settings.text_models),
            "imageModels": list(self.settings.image_models),
            "credentials": len(self.settings.credentials),
            "pid": os.getpid(),
        }
