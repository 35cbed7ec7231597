"""Manifest validation and auto-repair.

``repair_manifest`` is total and idempotent: any manifest, however sparse,
comes back with a complete page, a full stylesheet, a working script and
exactly one hero plus three project image prompts. It never mutates its input.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from siteforge.brief import ResolvedBrief, resolve_brief
from siteforge.markup import repair_markup
from siteforge.models import ArtifactManifest, AssetsNeeded, ManifestFile, UserBrief, safe_relative_path
from siteforge.render import SCRIPT, STYLESHEET, render_page, render_script, render_stylesheet
from siteforge.substitution import apply_substitutions, is_markup

log = logging.getLogger(__name__)

MAIN_PAGE = "index.html"
MIN_STYLESHEET_LINES = 100
MIN_SCRIPT_CHARS = 50
PROJECT_IMAGE_COUNT = 3

HERO_EXCLUSION_CLAUSE = (
    "STRICTLY NO people, NO human figures, NO faces, NO characters, NO superheroes, NO costumes, NO text"
)


def _palette_phrase(palette: Sequence[str]) -> str:
    colors = list(dict.fromkeys(c for c in palette if c))
    return ", ".join(colors)


def hero_prompt(palette: Sequence[str]) -> str:
    """Fixed abstract background prompt; only the (validated) palette varies."""
    colors = _palette_phrase(palette)
    color_part = f", color palette {colors}" if colors else ""
    return (
        "abstract geometric background pattern, modern web design, professional website hero background, "
        f"subtle gradients, clean flowing shapes{color_part}, minimal, high resolution. {HERO_EXCLUSION_CLAUSE}."
    )


def project_prompt(title: str, desc: str, palette: Sequence[str]) -> str:
    colors = _palette_phrase(palette)
    color_part = f", accent colors {colors}" if colors else ""
    return (
        f"professional screenshot or mockup of {title} project: {desc}, modern UI design, clean interface"
        f"{color_part}, product mock photo, neutral background, no people, realistic web application"
    )


def generic_project_prompt(palette: Sequence[str]) -> str:
    colors = _palette_phrase(palette)
    color_part = f", accent colors {colors}" if colors else ""
    return (
        "professional web application interface mockup, modern UI design, clean interface"
        f"{color_part}, product mock photo, neutral background, no people"
    )


def project_prompts(brief: ResolvedBrief, existing: Sequence[Any]) -> List[str]:
    prompts = []
    for n in range(1, PROJECT_IMAGE_COUNT + 1):
        current = existing[n - 1] if n - 1 < len(existing) else None
        if n <= len(brief.projects) and brief.projects[n - 1].supplied:
            proj = brief.projects[n - 1]
            prompts.append(project_prompt(proj.title, proj.desc, brief.palette))
        elif isinstance(current, str) and current.strip():
            prompts.append(current.strip())
        else:
            prompts.append(generic_project_prompt(brief.palette))
    return prompts


def _sanitize_files(files: Sequence[ManifestFile]) -> List[ManifestFile]:
    seen = set()
    out = []
    for f in files:
        path = safe_relative_path(f.path)
        if path is None:
            log.warning("dropping artifact with unsafe path %r", f.path)
            continue
        if path in seen:
            log.warning("dropping duplicate artifact %s", path)
            continue
        seen.add(path)
        out.append(ManifestFile(path=path, content=f.content or ""))
    return out


def _find(files: List[ManifestFile], path: str) -> Optional[ManifestFile]:
    return next((f for f in files if f.path == path), None)


def _user_data(brief: Union[UserBrief, Mapping[str, Any], ResolvedBrief, None], current: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(brief, UserBrief):
        return brief.to_user_data()
    if isinstance(brief, Mapping):
        return dict(brief)
    return dict(current)


def repair_manifest(
    manifest: ArtifactManifest,
    brief: Union[UserBrief, Mapping[str, Any], ResolvedBrief, None],
    *,
    year: Optional[int] = None,
) -> ArtifactManifest:
    year = year or dt.date.today().year
    resolved = brief if isinstance(brief, ResolvedBrief) else resolve_brief(brief)
    repaired = manifest.model_copy(deep=True)

    files = _sanitize_files(repaired.files)
    if _find(files, MAIN_PAGE) is None:
        files.insert(0, ManifestFile(path=MAIN_PAGE, content=render_page(resolved, year)))
        log.info("synthesized %s", MAIN_PAGE)
    if _find(files, STYLESHEET) is None:
        files.append(ManifestFile(path=STYLESHEET, content=""))
    if _find(files, SCRIPT) is None:
        files.append(ManifestFile(path=SCRIPT, content=""))

    files = apply_substitutions(files, resolved.scalar_tokens(year), escape_html=True)

    for f in files:
        if is_markup(f.path):
            f.content = repair_markup(f.content, resolved, year, structure=(f.path == MAIN_PAGE))

    css = _find(files, STYLESHEET)
    css_lines = len(css.content.splitlines())
    if css_lines < MIN_STYLESHEET_LINES:
        css.content = render_stylesheet(resolved.palette)
        log.info("replaced stylesheet (%d lines -> %d)", css_lines, len(css.content.splitlines()))

    js = _find(files, SCRIPT)
    if len(js.content.strip()) < MIN_SCRIPT_CHARS:
        js.content = render_script()
        log.info("replaced script")

    repaired.files = files
    repaired.assets_needed = AssetsNeeded(
        hero_image=hero_prompt(resolved.palette),
        project_images=project_prompts(resolved, repaired.assets_needed.project_images),
    )
    repaired.accent_palette = list(resolved.palette)
    repaired.user_data = _user_data(brief, repaired.user_data)
    repaired.site_name = (repaired.site_name or "").strip() or resolved.name
    return repaired
