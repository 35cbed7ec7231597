from __future__ import annotations

import json
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def safe_relative_path(path: Any) -> Optional[str]:
    """Return ``path`` as a normalized relative POSIX path, or None if it is unsafe.

    Absolute paths, drive letters and any ``..`` segment are rejected.
    """
    if not isinstance(path, str):
        return None
    raw = path.strip().replace("\\", "/")
    if not raw or raw.startswith("/") or ":" in raw.split("/", 1)[0]:
        return None
    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        return None
    return "/".join(parts)


class ProjectItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    desc: Optional[str] = None


class UserBrief(BaseModel):
    """Portfolio brief: structured fields, or a single free-text ``prompt``."""

    model_config = ConfigDict(extra="allow")

    prompt: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    tagline: Optional[str] = None
    about: Optional[str] = None
    email: Optional[str] = None
    accent: Optional[Union[str, List[str]]] = None
    skills: Optional[Union[List[str], str]] = None
    projects: Optional[List[ProjectItem]] = None

    @property
    def is_prompt_mode(self) -> bool:
        return bool((self.prompt or "").strip())

    def to_user_data(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ManifestFile(BaseModel):
    path: str
    content: str = ""


class AssetsNeeded(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hero_image: str = Field("", alias="heroImage")
    project_images: List[str] = Field(default_factory=list, alias="projectImages")


class ArtifactManifest(BaseModel):
    """Structured description of a generated site: its files and the images it still needs."""

    model_config = ConfigDict(populate_by_name=True)

    site_name: str = ""
    files: List[ManifestFile] = Field(default_factory=list)
    assets_needed: AssetsNeeded = Field(default_factory=AssetsNeeded, alias="assetsNeeded")
    user_data: Dict[str, Any] = Field(default_factory=dict, alias="userData")
    accent_palette: List[str] = Field(default_factory=list, alias="accentPalette")

    @classmethod
    def from_raw(cls, data: Dict[str, Any]) -> "ArtifactManifest":
        """Build a manifest from loosely shaped model output without rejecting it.

        Structural problems (bad paths, missing artifacts) are left for the
        repair engine; this only coerces types.
        """
        files: List[ManifestFile] = []
        raw_files = data.get("files")
        if isinstance(raw_files, dict):
            raw_files = [{"path": k, "content": v} for k, v in raw_files.items()]
        if isinstance(raw_files, list):
            for item in raw_files:
                if not isinstance(item, dict) or not isinstance(item.get("path"), str):
                    continue
                content = item.get("content")
                if content is None:
                    content = ""
                elif not isinstance(content, str):
                    content = json.dumps(content, ensure_ascii=False)
                files.append(ManifestFile(path=item["path"], content=content))

        raw_assets = data.get("assetsNeeded") or data.get("assets_needed") or {}
        hero = ""
        project_images: List[str] = []
        if isinstance(raw_assets, dict):
            hero_val = raw_assets.get("heroImage") or raw_assets.get("hero_image")
            hero = hero_val if isinstance(hero_val, str) else ""
            imgs = raw_assets.get("projectImages") or raw_assets.get("project_images") or []
            if isinstance(imgs, list):
                project_images = [p for p in imgs if isinstance(p, str)]

        site_name = data.get("site_name") or data.get("siteName") or ""
        user_data = data.get("userData") if isinstance(data.get("userData"), dict) else {}
        palette = data.get("accentPalette") if isinstance(data.get("accentPalette"), list) else []
        return cls(
            site_name=site_name if isinstance(site_name, str) else str(site_name),
            files=files,
            assets_needed=AssetsNeeded(hero_image=hero, project_images=project_images),
            user_data=user_data,
            accent_palette=[p for p in palette if isinstance(p, str)],
        )

    def file(self, path: str) -> Optional[ManifestFile]:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), ensure_ascii=False, indent=2)


class ProjectRequest(BaseModel):
    id: Optional[str] = None
