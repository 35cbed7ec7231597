from __future__ import annotations

import json
from typing import Any, Dict, List

from siteforge.brief import ResolvedBrief

STRICT_JSON_REMINDER = (
    "REMEMBER: Return ONLY valid JSON that matches the schema. "
    "No commentary, no markdown, no extra text."
)

_SCHEMA_EXAMPLE: Dict[str, Any] = {
    "site_name": "string (owner's name)",
    "files": [
        {"path": "index.html", "content": "complete HTML document with every section populated"},
        {"path": "styles.css", "content": "complete stylesheet, several hundred lines"},
        {"path": "script.js", "content": "smooth scroll, mobile menu toggle, footer year"},
    ],
    "assetsNeeded": {
        "heroImage": "abstract geometric background description",
        "projectImages": [
            "image description for project 1",
            "image description for project 2",
            "image description for project 3",
        ],
    },
}


def build_system_prompt() -> str:
    schema = json.dumps(_SCHEMA_EXAMPLE, indent=2)
    return (
        "You are an expert web developer generating a complete single-page portfolio site.\n\n"
        "Markup rules:\n"
        "- Use semantic HTML5: <header> with <nav>, a <main> holding the sections, and a <footer>.\n"
        '- Sections in this order: <section class="hero">, <section id="about">, <section id="skills">, '
        '<section id="projects">, <section id="contact">.\n'
        "- The hero uses {{HERO_IMAGE}} as its image and shows the name, title, tagline and a call-to-action link.\n"
        "- About has a heading and two or three paragraphs that expand on the owner's own words.\n"
        '- Skills lists every skill as an <li> inside <ul class="skills-list">.\n'
        "- Projects is a grid of <article> cards; card n uses {{PROJECT_n_IMG}}, {{PROJECT_n_TITLE}} and "
        "{{PROJECT_n_DESC}} for n = 1..3.\n"
        "- Contact has a heading and a mailto link; the footer has a copyright line with the name and year.\n"
        "- Never emit an empty heading or paragraph.\n"
        '- Link the stylesheet as styles.css and load script.js with <script src="script.js" defer>.\n\n'
        "Stylesheet rules: CSS variables for the palette, responsive breakpoints at 1024px, 768px and 480px, "
        "styles for every section, hover transitions.\n\n"
        "Image rules: heroImage MUST describe an abstract geometric background pattern. No people, no figures, "
        "no characters, no superheroes. projectImages describe each actual project.\n\n"
        "Respond with a single JSON object matching this schema exactly:\n"
        f"{schema}\n\n"
        "Output JSON only. The first non-whitespace character MUST be '{'."
    )


def _structured_lines(brief: ResolvedBrief) -> List[str]:
    lines = [
        f"Name: {brief.name}",
        f"Title: {brief.title}",
        f"Tagline: {brief.tagline}",
        f"About: {brief.about}",
        f"Email: {brief.email}",
        f"Accent colors: {', '.join(dict.fromkeys(brief.palette))}",
        f"Skills: {', '.join(brief.skills)}",
        "Projects:",
    ]
    for n, proj in enumerate(brief.projects, start=1):
        lines.append(f"  {n}. {proj.title} - {proj.desc}")
    return lines


def build_user_prompt(brief: ResolvedBrief) -> str:
    """Prompt mode forwards the free-text request; structured mode lists the resolved fields."""
    if brief.prompt:
        return (
            "Create a complete professional portfolio website for this request:\n"
            f"{brief.prompt}\n\n"
            "Infer name, title, skills and projects from the request; invent tasteful placeholders "
            "where it is silent. Keep the mandatory sections and placeholder tokens."
        )
    return (
        "Create a complete professional portfolio website using exactly this data:\n"
        + "\n".join(_structured_lines(brief))
        + "\n\nUse every skill and every project listed above."
    )


def build_generation_prompt(brief: ResolvedBrief, strict: bool = False) -> str:
    prompt = build_system_prompt() + "\n\n" + build_user_prompt(brief)
    if strict:
        prompt += "\n\n" + STRICT_JSON_REMINDER
    return prompt
