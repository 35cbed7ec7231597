from __future__ import annotations

import os
from typing import Any, Dict, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from siteforge.brief import MAX_PROJECT_IMAGES, ResolvedBrief, expand_about
from siteforge.substitution import token

STYLESHEET = "styles.css"
SCRIPT = "script.js"
MAIN_REGIONS = ("hero", "about", "skills", "projects", "contact")
REGIONS = ("header",) + MAIN_REGIONS + ("footer",)

# Package templates; placeholder tokens are passed in as values because
# ``{{...}}`` is also Jinja's own delimiter.
_env = Environment(
    loader=FileSystemLoader(os.path.join(os.path.dirname(__file__), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
    enable_async=False,
)


def site_context(brief: ResolvedBrief, year: int) -> Dict[str, Any]:
    projects = []
    for n, proj in enumerate(brief.projects, start=1):
        projects.append(
            {
                "n": n,
                "title": proj.title,
                "desc": proj.desc,
                "img": token(f"PROJECT_{n}_IMG") if n <= MAX_PROJECT_IMAGES else None,
            }
        )
    return {
        "name": brief.name,
        "title": brief.title,
        "tagline": brief.tagline,
        "email": brief.email,
        "year": year,
        "skills": list(brief.skills),
        "projects": projects,
        "about_paragraphs": expand_about(brief),
        "hero_image": token("HERO_IMAGE"),
        "stylesheet": STYLESHEET,
        "script": SCRIPT,
        "main_regions": MAIN_REGIONS,
    }


def render_region(region: str, brief: ResolvedBrief, year: int) -> str:
    """Render one named page region (``header``, ``hero``, ..., ``footer``) as an HTML fragment."""
    if region not in REGIONS:
        raise ValueError(f"unknown region: {region!r}")
    tpl = _env.get_template(f"partials/{region}.html")
    return tpl.render(site=site_context(brief, year))


def render_page(brief: ResolvedBrief, year: int) -> str:
    return _env.get_template("page.html").render(site=site_context(brief, year))


def render_stylesheet(palette: Tuple[str, str, str]) -> str:
    primary, secondary, tertiary = palette
    tpl = _env.get_template("styles.css")
    return tpl.render(palette={"primary": primary, "secondary": secondary, "tertiary": tertiary})


def render_script() -> str:
    return _env.get_template("script.js").render()
