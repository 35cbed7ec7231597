"""Image asset resolution with local placeholder fallback.

Each need is resolved independently; a provider failure for one image never
stops the others and never fails the phase. Every need ends up as a file under
``assets/`` and a ``{{TOKEN}} -> ./assets/<file>`` mapping entry.
"""
from __future__ import annotations

import base64
import hashlib
import io
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw, UnidentifiedImageError

from siteforge.brief import DEFAULT_ACCENT
from siteforge.errors import AssetResolutionFailure, SiteforgeError
from siteforge.invoker import IMAGE, GenerationRequest, ResilientInvoker
from siteforge.models import ArtifactManifest
from siteforge.repair import PROJECT_IMAGE_COUNT, generic_project_prompt, hero_prompt
from siteforge.rotation import Candidate

log = logging.getLogger(__name__)

HERO_SIZE = (1200, 600)
PROJECT_SIZE = (800, 600)
# 1x1 PNG used when even the placeholder renderer fails
MINIMAL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)


@dataclass(frozen=True)
class AssetNeed:
    token: str
    filename: str
    prompt: str
    size: Tuple[int, int]

    @property
    def relative_path(self) -> str:
        return f"./assets/{self.filename}"


def asset_needs(manifest: ArtifactManifest) -> List[AssetNeed]:
    """Hero plus three project needs; the hero prompt is always recomputed from the palette."""
    palette = tuple(manifest.accent_palette) or (DEFAULT_ACCENT,)
    needs = [AssetNeed("HERO_IMAGE", "hero.png", hero_prompt(palette), HERO_SIZE)]
    prompts = manifest.assets_needed.project_images
    for n in range(1, PROJECT_IMAGE_COUNT + 1):
        prompt = prompts[n - 1] if n - 1 < len(prompts) else ""
        if not (isinstance(prompt, str) and prompt.strip()):
            prompt = generic_project_prompt(palette)
        needs.append(AssetNeed(f"PROJECT_{n}_IMG", f"project_{n}.png", prompt, PROJECT_SIZE))
    return needs


def _rgb(color: str, fallback: Tuple[int, int, int]) -> Tuple[int, int, int]:
    try:
        return ImageColor.getrgb(color)[:3]
    except (ValueError, AttributeError):
        return fallback


def render_placeholder(prompt: str, size: Tuple[int, int], palette: Sequence[str] = ()) -> bytes:
    """Deterministic gradient tinted by the palette, with a few soft shapes seeded by the prompt."""
    width, height = size
    seed = int(hashlib.sha256(prompt.encode("utf-8")).hexdigest()[0:8], 16)
    rng = random.Random(seed)
    seeded = tuple(rng.randint(70, 200) for _ in range(3))
    start = _rgb(palette[0], seeded) if palette else seeded
    end = _rgb(palette[1], start) if len(palette) > 1 else tuple(min(255, c + 60) for c in start)

    image = Image.new("RGB", (width, height), start)
    draw = ImageDraw.Draw(image)
    for x in range(width):
        t = x / max(1, width - 1)
        color = tuple(int(a + (b - a) * t) for a, b in zip(start, end))
        draw.line([(x, 0), (x, height)], fill=color)

    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    shapes = ImageDraw.Draw(overlay)
    for idx in range(8):
        radius = rng.randint(width // 12, width // 5)
        cx = rng.randint(0, width)
        cy = rng.randint(0, height)
        alpha = int(90 * (1 - idx / 8))
        shapes.ellipse([cx - radius, cy - radius, cx + radius, cy + radius], fill=(255, 255, 255, alpha))
    image.paste(overlay, mask=overlay.split()[-1])

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def normalize_png(blob: bytes) -> bytes:
    """Re-encode provider output as PNG so the ``.png`` file name is truthful."""
    try:
        with Image.open(io.BytesIO(blob)) as img:
            buffer = io.BytesIO()
            img.convert("RGBA" if "A" in img.getbands() else "RGB").save(buffer, format="PNG")
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise AssetResolutionFailure(f"provider returned an unreadable image: {exc}") from exc


def placeholder_bytes(need: AssetNeed, palette: Sequence[str]) -> bytes:
    try:
        return render_placeholder(need.prompt, need.size, palette)
    except Exception as exc:
        log.warning("placeholder render failed for %s: %r; using minimal PNG", need.filename, exc)
        return MINIMAL_PNG


class AssetResolver:
    def __init__(self, invoker: ResilientInvoker, candidates: Sequence[Candidate], store) -> None:
        self.invoker = invoker
        self.candidates = tuple(candidates)
        self.store = store

    def _synthesize(self, need: AssetNeed) -> bytes:
        outcome = self.invoker.run(GenerationRequest(kind=IMAGE, payload=need.prompt, candidates=self.candidates))
        if not outcome.ok:
            raise AssetResolutionFailure(f"image synthesis failed for {need.filename}: {outcome.last_error}")
        content = outcome.content
        if not isinstance(content, (bytes, bytearray)) or not content:
            raise AssetResolutionFailure(f"empty image payload for {need.filename}")
        return normalize_png(content)

    def resolve_one(self, project_id: str, need: AssetNeed, palette: Sequence[str]) -> str:
        try:
            blob = self._synthesize(need)
            source = "generated"
        except SiteforgeError as exc:
            log.warning("asset %s falling back to placeholder: %s", need.filename, exc)
            blob = placeholder_bytes(need, palette)
            source = "placeholder"
        self.store.write_asset(project_id, need.filename, blob)
        log.info("asset %s written (%s, %d bytes)", need.filename, source, len(blob))
        return source

    def resolve(self, project_id: str, manifest: ArtifactManifest) -> Dict[str, str]:
        """Resolve every need and return the token -> relative path mapping."""
        palette = list(manifest.accent_palette)
        mapping: Dict[str, str] = {}
        for need in asset_needs(manifest):
            self.resolve_one(project_id, need, palette)
            mapping[need.token] = need.relative_path
        return mapping
