"""Tree-level repair of generated page markup.

Two passes run over a BeautifulSoup tree:

* :class:`EmptyNodeFiller` visits every heading and paragraph that carries no
  text and fills it from the brief, keyed by the nearest enclosing named
  region (hero, about, skills, projects, contact, header, footer).
* :class:`StructureRepairer` makes sure the document skeleton, the asset
  references and every required region exist, synthesizing what is missing
  from the package templates.

Project attribution for empty nodes inside the projects region is a
best-effort guess: the enclosing card's single project marker if it has one,
otherwise the nearest preceding marker in document order. Generator output that
reorders or nests cards unusually can be misattributed.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Set, Tuple

from bs4 import BeautifulSoup, Doctype, NavigableString, Tag

from siteforge.brief import ResolvedBrief
from siteforge.render import MAIN_REGIONS, SCRIPT, STYLESHEET, render_region

log = logging.getLogger(__name__)

HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")
CONTENT_TAGS = HEADINGS + ("p",)
_MEDIA_TAGS = {"img", "svg", "picture", "video", "audio", "iframe", "canvas", "object", "embed", "input"}
_HEAD_TAGS = {"title", "meta", "link", "style", "base"}
# Tags that can host a region
REGION_CONTAINERS = {"section", "div", "article", "aside", "main", "header", "footer", "nav"}

_TOKEN_MARKER_RE = re.compile(r"\{\{PROJECT_(\d+)_(?:IMG|TITLE|DESC)\}\}")
_ASSET_MARKER_RE = re.compile(r"assets/project_(\d+)")


def is_empty_node(tag: Tag) -> bool:
    """A heading/paragraph with no visible text and no embedded media."""
    if tag.name not in CONTENT_TAGS:
        return False
    if tag.get_text(strip=True):
        return False
    return not any(isinstance(d, Tag) and d.name in _MEDIA_TAGS for d in tag.descendants)


def matches_region(tag: Tag, name: str) -> bool:
    if tag.name not in REGION_CONTAINERS:
        return False
    ident = str(tag.get("id") or "").lower()
    raw = tag.get("class") or []
    if isinstance(raw, str):
        raw = raw.split()
    classes = [str(c).lower() for c in raw]
    accepted = (name, f"{name}-section")
    return ident in accepted or any(c in accepted for c in classes)


def named_region(tag: Tag) -> Optional[str]:
    for name in MAIN_REGIONS:
        if matches_region(tag, name):
            return name
    return None


def region_of(node: Tag) -> Tuple[Optional[str], Optional[Tag]]:
    """Nearest enclosing named region; id/class regions win over bare header/footer tags."""
    fallback: Tuple[Optional[str], Optional[Tag]] = (None, None)
    for anc in node.parents:
        if not isinstance(anc, Tag) or isinstance(anc, BeautifulSoup):
            continue
        name = named_region(anc)
        if name:
            return name, anc
        if fallback[0] is None and anc.name in ("header", "footer"):
            fallback = (anc.name, anc)
    return fallback


def _markers_in(element) -> List[int]:
    found: List[int] = []
    if isinstance(element, NavigableString):
        text = str(element)
        found.extend(int(n) for n in _TOKEN_MARKER_RE.findall(text))
        found.extend(int(n) for n in _ASSET_MARKER_RE.findall(text))
    elif isinstance(element, Tag):
        for value in element.attrs.values():
            values = value if isinstance(value, list) else [value]
            for v in values:
                v = str(v)
                found.extend(int(n) for n in _TOKEN_MARKER_RE.findall(v))
                found.extend(int(n) for n in _ASSET_MARKER_RE.findall(v))
    return found


def _markers_within(tag: Tag) -> Set[int]:
    found = set(_markers_in(tag))
    for d in tag.descendants:
        found.update(_markers_in(d))
    return found


def project_index(node: Tag, region: Tag) -> Optional[int]:
    parent = node.parent
    while parent is not None and parent is not region:
        found = _markers_within(parent)
        if len(found) == 1:
            return found.pop()
        if len(found) > 1:
            break
        parent = parent.parent
    for element in node.previous_elements:
        if element is region:
            break
        found = _markers_in(element)
        if found:
            return found[-1]
    return None


class EmptyNodeFiller:
    """Visitor that fills empty headings and paragraphs from the brief."""

    def __init__(self, brief: ResolvedBrief, year: int) -> None:
        self.brief = brief
        self.year = year
        self._handlers: Dict[str, Callable[[Tag, Tag], str]] = {
            "hero": self.fill_hero,
            "about": self.fill_about,
            "skills": self.fill_skills,
            "projects": self.fill_projects,
            "contact": self.fill_contact,
            "header": self.fill_header,
            "footer": self.fill_footer,
        }

    def visit(self, soup: BeautifulSoup) -> int:
        filled = 0
        for tag in soup.find_all(CONTENT_TAGS):
            if not is_empty_node(tag):
                continue
            name, region = region_of(tag)
            handler = self._handlers.get(name or "")
            text = handler(tag, region) if handler else self.brief.title
            tag.append(NavigableString(text))
            filled += 1
        if filled:
            log.info("filled %d empty content node(s)", filled)
        return filled

    def fill_hero(self, tag: Tag, region: Tag) -> str:
        return self.brief.title if tag.name in HEADINGS else self.brief.tagline

    def fill_about(self, tag: Tag, region: Tag) -> str:
        return "About Me" if tag.name in HEADINGS else self.brief.about

    def fill_skills(self, tag: Tag, region: Tag) -> str:
        return "Skills & Technologies" if tag.name in HEADINGS else self.brief.title

    def fill_projects(self, tag: Tag, region: Tag) -> str:
        idx = project_index(tag, region)
        if idx is None:
            return "Projects" if tag.name in HEADINGS else self.brief.title
        project = self.brief.project(idx)
        return project.title if tag.name in HEADINGS else project.desc

    def fill_contact(self, tag: Tag, region: Tag) -> str:
        return "Get In Touch" if tag.name in HEADINGS else f"Email: {self.brief.email}"

    def fill_header(self, tag: Tag, region: Tag) -> str:
        return self.brief.name if tag.name in HEADINGS else self.brief.title

    def fill_footer(self, tag: Tag, region: Tag) -> str:
        if tag.name == "p":
            return f"© {self.year} {self.brief.name}. All rights reserved."
        return self.brief.title


class StructureRepairer:
    """Ensure skeleton, asset references and every required region exist."""

    def __init__(self, soup: BeautifulSoup, brief: ResolvedBrief, year: int) -> None:
        self.soup = soup
        self.brief = brief
        self.year = year
        self.changed = False

    def repair(self) -> bool:
        self.ensure_skeleton()
        self.ensure_links()
        self.ensure_header()
        self.ensure_regions()
        self.ensure_footer()
        self.ensure_about()
        self.ensure_skills()
        self.ensure_projects()
        return self.changed

    # helpers

    def _fragment(self, region: str) -> Tag:
        return BeautifulSoup(render_region(region, self.brief, self.year), "html.parser").find(True)

    def _mark(self, what: str) -> None:
        self.changed = True
        log.info("markup repair: %s", what)

    def find_region(self, name: str) -> Optional[Tag]:
        return self.soup.find(lambda t: matches_region(t, name))

    def _page_level(self, tag_name: str) -> Optional[Tag]:
        # Cards may carry their own <header>/<footer>; only page-level ones count
        for tag in self.body.find_all(tag_name):
            if tag.find_parent(["article", "section"]) is None:
                return tag
        return None

    # passes

    def ensure_skeleton(self) -> None:
        soup = self.soup
        html = soup.find("html")
        if html is None:
            html = soup.new_tag("html", attrs={"lang": "en"})
            for child in list(soup.contents):
                if not isinstance(child, Doctype):
                    html.append(child.extract())
            soup.append(html)
            self._mark("added <html>")
        if not any(isinstance(c, Doctype) for c in soup.contents):
            soup.insert(0, Doctype("html"))
            self._mark("added doctype")

        head = html.find("head")
        if head is None:
            head = soup.new_tag("head")
            html.insert(0, head)
            self._mark("added <head>")
        body = html.find("body")
        if body is None:
            body = soup.new_tag("body")
            for child in list(html.contents):
                if child is head:
                    continue
                if isinstance(child, Tag) and child.name in _HEAD_TAGS:
                    head.append(child.extract())
                else:
                    body.append(child.extract())
            html.append(body)
            self._mark("added <body>")
        self.head = head
        self.body = body

        if head.find("meta", attrs={"charset": True}) is None:
            head.insert(0, soup.new_tag("meta", attrs={"charset": "utf-8"}))
            self._mark("added charset meta")
        if head.find("meta", attrs={"name": "viewport"}) is None:
            head.append(soup.new_tag("meta", attrs={"name": "viewport", "content": "width=device-width, initial-scale=1"}))
            self._mark("added viewport meta")
        if head.find("title") is None:
            title = soup.new_tag("title")
            title.string = f"{self.brief.name} | {self.brief.title}"
            head.append(title)
            self._mark("added <title>")

        main = body.find("main")
        if main is None:
            main = soup.new_tag("main")
            movable = [
                c
                for c in body.contents
                if not (isinstance(c, Tag) and c.name in ("header", "nav", "footer", "script"))
                and not (isinstance(c, NavigableString) and not c.strip())
            ]
            if movable:
                movable[0].insert_before(main)
            else:
                header = next((c for c in body.contents if isinstance(c, Tag) and c.name in ("header", "nav")), None)
                if header is not None:
                    header.insert_after(main)
                else:
                    body.insert(0, main)
            for child in movable:
                main.append(child.extract())
            self._mark("added <main>")
        self.main = main

    def _references(self, tag_name: str, attr: str, target: str) -> bool:
        for tag in self.soup.find_all(tag_name):
            value = str(tag.get(attr) or "").split("?", 1)[0]
            if value.rsplit("/", 1)[-1] == target:
                return True
        return False

    def ensure_links(self) -> None:
        if not self._references("link", "href", STYLESHEET):
            self.head.append(self.soup.new_tag("link", attrs={"rel": "stylesheet", "href": STYLESHEET}))
            self._mark("linked stylesheet")
        if not self._references("script", "src", SCRIPT):
            self.body.append(self.soup.new_tag("script", attrs={"src": SCRIPT, "defer": ""}))
            self._mark("linked script")

    def ensure_header(self) -> None:
        header = self._page_level("header")
        if header is None:
            nav = self.body.find("nav")
            if nav is not None:
                nav.wrap(self.soup.new_tag("header", attrs={"class": "site-header"}))
            else:
                self.body.insert(0, self._fragment("header"))
            self._mark("added header")
        elif header.find("nav") is None:
            header.append(self._fragment("header").find("nav"))
            self._mark("added nav to header")

    def ensure_regions(self) -> None:
        for idx, name in enumerate(MAIN_REGIONS):
            if self.find_region(name) is not None:
                continue
            fragment = self._fragment(name)
            anchor = None
            for previous in reversed(MAIN_REGIONS[:idx]):
                anchor = self.find_region(previous)
                if anchor is not None:
                    break
            if anchor is not None:
                anchor.insert_after(fragment)
            elif name == "contact":
                self.main.append(fragment)
            else:
                self.main.insert(0, fragment)
            self._mark(f"added {name} region")

    def ensure_footer(self) -> None:
        if self._page_level("footer") is None:
            self.main.insert_after(self._fragment("footer"))
            self._mark("added footer")

    def ensure_about(self) -> None:
        about = self.find_region("about")
        paragraphs = [p for p in about.find_all("p") if p.get_text(strip=True)]
        if len(paragraphs) >= 2:
            return
        fresh = self._fragment("about")
        about.clear()
        for child in list(fresh.contents):
            about.append(child.extract())
        self._mark("expanded about region")

    def ensure_skills(self) -> None:
        skills = self.find_region("skills")
        if len(skills.find_all("li")) >= len(self.brief.skills):
            return
        fresh = self._fragment("skills").find("ul")
        current = skills.find(["ul", "ol"])
        if current is not None:
            current.replace_with(fresh)
        else:
            skills.append(fresh)
        self._mark("rebuilt skills list")

    def ensure_projects(self) -> None:
        projects = self.find_region("projects")
        if projects.find(["h3", "h4"]) is not None:
            return
        fresh = self._fragment("projects").find(class_="projects-grid")
        current = projects.find(class_="projects-grid")
        if current is not None:
            current.replace_with(fresh)
        else:
            projects.append(fresh)
        self._mark("rebuilt project cards")


def repair_markup(markup: str, brief: ResolvedBrief, year: int, structure: bool = True) -> str:
    """Fill empty nodes and, for the main page, complete its structure.

    The input is returned untouched when nothing needed fixing, so repairing an
    already repaired page is a no-op.
    """
    soup = BeautifulSoup(markup or "", "html.parser")
    changed = EmptyNodeFiller(brief, year).visit(soup) > 0
    if structure:
        changed = StructureRepairer(soup, brief, year).repair() or changed
    return str(soup) if changed else markup
