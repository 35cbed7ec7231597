"""On-disk project store: one directory per project id.

Layout::

    <root>/<id>/manifest.json
    <root>/<id>/assets/
    <root>/<id>/build/
    <root>/<id>/site.zip
"""
from __future__ import annotations

import json
import logging
import re
import secrets
import shutil
import string
import zipfile
from pathlib import Path
from typing import Union

from siteforge.errors import UnknownProjectError
from siteforge.models import ArtifactManifest, safe_relative_path

log = logging.getLogger(__name__)

ID_RE = re.compile(r"[a-z0-9]{1,32}")
ID_ALPHABET = string.digits + string.ascii_lowercase
ID_LENGTH = 8
MANIFEST_FILE = "manifest.json"
ASSETS_DIR = "assets"
BUILD_DIR = "build"
ARCHIVE_FILE = "site.zip"


def is_valid_id(project_id: object) -> bool:
    return isinstance(project_id, str) and bool(ID_RE.fullmatch(project_id))


class ProjectStore:
    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def new_id(self) -> str:
        while True:
            candidate = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))
            if not (self.root / candidate).exists():
                return candidate

    def dir_for(self, project_id: str) -> Path:
        if not is_valid_id(project_id):
            raise UnknownProjectError(f"Invalid project id: {project_id!r}")
        return self.root / project_id

    def manifest_path(self, project_id: str) -> Path:
        return self.dir_for(project_id) / MANIFEST_FILE

    def archive_path(self, project_id: str) -> Path:
        return self.dir_for(project_id) / ARCHIVE_FILE

    def exists(self, project_id: str) -> bool:
        return is_valid_id(project_id) and self.manifest_path(project_id).is_file()

    def save_manifest(self, project_id: str, manifest: ArtifactManifest) -> Path:
        path = self.manifest_path(project_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            f.write(manifest.to_json())
        tmp.replace(path)
        return path

    def load_manifest(self, project_id: str) -> ArtifactManifest:
        if not self.exists(project_id):
            raise UnknownProjectError(f"No manifest for project {project_id!r}")
        with self.manifest_path(project_id).open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise UnknownProjectError(f"Corrupt manifest for project {project_id}")
        return ArtifactManifest.from_raw(data)

    def write_asset(self, project_id: str, filename: str, blob: bytes) -> Path:
        rel = safe_relative_path(filename)
        if rel is None:
            raise ValueError(f"unsafe asset name: {filename!r}")
        target = self.dir_for(project_id) / ASSETS_DIR / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(blob)
        return target

    def build(self, project_id: str) -> Path:
        """Materialize manifest files and assets into ``build/`` and package ``site.zip``."""
        manifest = self.load_manifest(project_id)
        project_dir = self.dir_for(project_id)
        build_dir = project_dir / BUILD_DIR
        if build_dir.exists():
            shutil.rmtree(build_dir)
        build_dir.mkdir(parents=True)

        written = 0
        for f in manifest.files:
            rel = safe_relative_path(f.path)
            if rel is None:
                log.warning("build %s: skipping unsafe path %r", project_id, f.path)
                continue
            target = build_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(f.content, encoding="utf-8")
            written += 1

        assets_dir = project_dir / ASSETS_DIR
        if assets_dir.is_dir():
            shutil.copytree(assets_dir, build_dir / ASSETS_DIR, dirs_exist_ok=True)

        archive = project_dir / ARCHIVE_FILE
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(build_dir.rglob("*")):
                if path.is_file():
                    zf.write(path, path.relative_to(build_dir).as_posix())
        log.info("build %s: %d file(s) written, archive %s", project_id, written, archive.name)
        return build_dir
