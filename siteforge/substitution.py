"""Literal ``{{TOKEN}}`` replacement across manifest files."""
from __future__ import annotations

import html
import re
from typing import Dict, Iterable, List, Mapping, Set

from siteforge.models import ManifestFile

TOKEN_RE = re.compile(r"\{\{([A-Z0-9_]+)\}\}")
MARKUP_SUFFIXES = (".html", ".htm")


def token(name: str) -> str:
    return "{{" + name + "}}"


def is_markup(path: str) -> bool:
    return path.lower().endswith(MARKUP_SUFFIXES)


def substitute_text(text: str, mapping: Mapping[str, str]) -> str:
    """Replace every known token in one pass; replaced values are never rescanned."""
    if not text or not mapping:
        return text
    names = sorted(mapping, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(token(n)) for n in names))
    return pattern.sub(lambda m: mapping[m.group(0)[2:-2]], text)


def apply_substitutions(files: Iterable[ManifestFile], mapping: Mapping[str, str], escape_html: bool = False) -> List[ManifestFile]:
    """Return new file entries with tokens resolved. Unknown tokens stay verbatim."""
    escaped: Dict[str, str] = {k: html.escape(v, quote=True) for k, v in mapping.items()} if escape_html else dict(mapping)
    out = []
    for f in files:
        table = escaped if is_markup(f.path) else mapping
        out.append(ManifestFile(path=f.path, content=substitute_text(f.content, table)))
    return out


def unresolved_tokens(files: Iterable[ManifestFile]) -> Set[str]:
    found: Set[str] = set()
    for f in files:
        found.update(TOKEN_RE.findall(f.content or ""))
    return found
