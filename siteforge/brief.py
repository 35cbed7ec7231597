"""Field defaulting for user briefs.

Every repair rule reads the brief through :func:`resolve_brief` so that a
missing field always has the same fallback value.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from siteforge.models import UserBrief

DEFAULT_NAME = "Portfolio Owner"
DEFAULT_TITLE = "Web Developer"
DEFAULT_TAGLINE = "Creating beautiful web experiences"
DEFAULT_ABOUT = "Passionate professional with expertise in web development"
DEFAULT_EMAIL = "contact@example.com"
DEFAULT_ACCENT = "#22D3EE"
DEFAULT_SKILLS = ("HTML", "CSS", "JavaScript")
_ORDINALS = ("First", "Second", "Third")
MAX_PROJECTS = 6
MAX_PROJECT_IMAGES = 3

_COLOR_RE = re.compile(
    r"^(?:#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})"
    r"|(?:rgb|rgba|hsl|hsla)\(\s*[0-9.,%\s/deg]+\)"
    r"|[a-zA-Z]{3,20})$"
)


def clean_text(value: Any) -> str:
    """Strip a user value and break up ``{{``/``}}`` so it can never form a placeholder token."""
    if value is None:
        return ""
    text = str(value).strip()
    while "{{" in text or "}}" in text:
        text = text.replace("{{", "{ {").replace("}}", "} }")
    return text


def split_palette(accent: Union[str, Sequence[str], None]) -> List[str]:
    """Split a comma separated accent value, ignoring commas inside ``rgb(...)``-style functions."""
    if accent is None:
        return []
    if isinstance(accent, (list, tuple)):
        raw = [str(a) for a in accent if a]
    else:
        raw, depth, buf = [], 0, ""
        for ch in str(accent):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth = max(0, depth - 1)
            if ch == "," and depth == 0:
                raw.append(buf)
                buf = ""
                continue
            buf += ch
        raw.append(buf)
    return [c.strip() for c in raw if c.strip() and _COLOR_RE.match(c.strip())]


@dataclass(frozen=True)
class ResolvedProject:
    title: str
    desc: str
    supplied: bool = False


@dataclass(frozen=True)
class ResolvedBrief:
    name: str
    title: str
    tagline: str
    about: str
    email: str
    skills: Tuple[str, ...]
    projects: Tuple[ResolvedProject, ...]
    palette: Tuple[str, str, str]
    prompt: Optional[str] = None

    @property
    def accent(self) -> str:
        return self.palette[0]

    def project(self, number: int) -> ResolvedProject:
        """1-based project lookup; numbers past the brief get placeholder copy."""
        if 1 <= number <= len(self.projects):
            return self.projects[number - 1]
        return default_project(number)

    def scalar_tokens(self, year: int) -> Dict[str, str]:
        tokens = {
            "NAME": self.name,
            "TITLE": self.title,
            "TAGLINE": self.tagline,
            "ABOUT": self.about,
            "EMAIL": self.email,
            "YEAR": str(year),
        }
        for n in range(1, MAX_PROJECT_IMAGES + 1):
            proj = self.project(n)
            tokens[f"PROJECT_{n}_TITLE"] = proj.title
            tokens[f"PROJECT_{n}_DESC"] = proj.desc
        return tokens


def default_project(number: int) -> ResolvedProject:
    ordinal = _ORDINALS[number - 1] if 1 <= number <= len(_ORDINALS) else f"Project {number}"
    return ResolvedProject(title=f"Project {number}", desc=f"{ordinal} project description")


def _as_mapping(brief: Union[UserBrief, Mapping[str, Any], None]) -> Dict[str, Any]:
    if brief is None:
        return {}
    if isinstance(brief, UserBrief):
        return brief.model_dump(exclude_none=True)
    return dict(brief)


def _resolve_skills(raw: Any) -> Tuple[str, ...]:
    if isinstance(raw, str):
        raw = raw.split(",")
    skills = [clean_text(s) for s in raw or [] if isinstance(s, (str, int, float))]
    skills = [s for s in skills if s]
    return tuple(skills) or DEFAULT_SKILLS


def _resolve_projects(raw: Any) -> Tuple[ResolvedProject, ...]:
    if not isinstance(raw, list) or not raw:
        return tuple(default_project(n) for n in range(1, 4))
    out = []
    for item in raw[:MAX_PROJECTS]:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if not isinstance(item, dict):
            continue
        n = len(out) + 1
        title = clean_text(item.get("title"))
        desc = clean_text(item.get("desc") or item.get("description"))
        fallback = default_project(n)
        out.append(ResolvedProject(title=title or fallback.title, desc=desc or f"Project {n} description", supplied=bool(title or desc)))
    return tuple(out) or tuple(default_project(n) for n in range(1, 4))


def resolve_brief(brief: Union[UserBrief, Mapping[str, Any], None]) -> ResolvedBrief:
    data = _as_mapping(brief)
    palette = split_palette(data.get("accent")) or [DEFAULT_ACCENT]
    accent = palette[0]
    secondary = palette[1] if len(palette) > 1 else accent
    tertiary = palette[2] if len(palette) > 2 else secondary
    prompt = clean_text(data.get("prompt")) or None
    return ResolvedBrief(
        name=clean_text(data.get("name")) or DEFAULT_NAME,
        title=clean_text(data.get("title")) or DEFAULT_TITLE,
        tagline=clean_text(data.get("tagline")) or DEFAULT_TAGLINE,
        about=clean_text(data.get("about")) or DEFAULT_ABOUT,
        email=clean_text(data.get("email")) or DEFAULT_EMAIL,
        skills=_resolve_skills(data.get("skills")),
        projects=_resolve_projects(data.get("projects")),
        palette=(accent, secondary, tertiary),
        prompt=prompt,
    )


def expand_about(brief: ResolvedBrief) -> List[str]:
    """Three about paragraphs: the user's text (lightly extended), a skills paragraph, a closing one."""
    about = brief.about
    skills = list(brief.skills)
    if len(about) < 20:
        focus = ", ".join(skills[:3]) if skills else "web development"
        first = (
            f"I'm a passionate {brief.title} specializing in {focus}. I love creating innovative "
            "solutions that combine cutting-edge technology with intuitive user experiences."
        )
    elif len(about) < 100:
        strengths = f" With strong skills in {', '.join(skills[:4])}," if skills else ""
        first = f"{about.rstrip()}{strengths} I'm dedicated to delivering high-quality work."
    else:
        first = about
    expertise = f"With expertise spanning {', '.join(skills[:5])}, I" if skills else "I"
    second = (
        f"{expertise} bring a combination of technical expertise and creative problem-solving to every "
        "project. My approach focuses on solutions that are functional and scalable, but also "
        "user-friendly and visually appealing."
    )
    third = (
        "When I'm not working on projects, you can find me exploring new technologies, contributing "
        "to open-source communities, or sharing knowledge with fellow developers. I'm always excited "
        "to take on new challenges and collaborate on projects that make a real impact."
    )
    return [first, second, third]
