import json
import zipfile

from bs4 import BeautifulSoup

from siteforge.config import Settings
from siteforge.errors import FatalProviderError, TransientProviderError
from siteforge.llm_prompts import STRICT_JSON_REMINDER
from siteforge.pipeline import SitePipeline
from siteforge.store import ProjectStore
from siteforge.substitution import unresolved_tokens

ADA = {
    "name": "Ada",
    "title": "Engineer",
    "tagline": "Building things",
    "about": "",
    "skills": ["Go"],
    "projects": [{"title": "X", "desc": "Y"}],
}

GENERATED = {
    "site_name": "Ada",
    "files": [
        {
            "path": "index.html",
            "content": (
                "<!DOCTYPE html><html><head><title>{{NAME}}</title></head><body>"
                "<header><nav><h1>{{NAME}}</h1></nav></header><main>"
                '<section class="hero"><img src="{{HERO_IMAGE}}" alt=""><h2>{{TITLE}}</h2><p></p></section>'
                '<section id="about"><h2>About</h2><p>{{ABOUT}}</p></section>'
                '<section id="projects"><article><img src="{{PROJECT_1_IMG}}" alt="">'
                "<h3>{{PROJECT_1_TITLE}}</h3><p>{{PROJECT_1_DESC}}</p></article></section>"
                "</main></body></html>"
            ),
        },
        {"path": "styles.css", "content": "body{}"},
        {"path": "../escape.txt", "content": "nope"},
    ],
    "assetsNeeded": {"heroImage": "a caped hero named Ada", "projectImages": ["x"]},
}


class FakeAdapter:
    def __init__(self, texts=None, image_error=None):
        self.texts = list(texts or [])
        self.image_error = image_error or TransientProviderError("quota exceeded", status=429)
        self.text_prompts = []
        self.image_calls = 0

    def invoke(self, kind, credential, model, prompt):
        if kind == "image":
            self.image_calls += 1
            raise self.image_error
        self.text_prompts.append(prompt)
        item = self.texts.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _pipeline(tmp_path, adapter, credentials=("key-primary-0001", "key-backup-0002")):
    settings = Settings(credentials=tuple(credentials), projects_dir=tmp_path, public_base_url="http://test")
    return SitePipeline(settings, adapter=adapter, store=ProjectStore(tmp_path))


def _wrapped(payload):
    return "Here is the site you asked for:\n```json\n" + json.dumps(payload) + "\n```\nHope you like it!"


def test_full_run_with_every_image_call_failing(tmp_path):
    adapter = FakeAdapter(texts=[_wrapped(GENERATED)])
    pipeline = _pipeline(tmp_path, adapter)

    spec = pipeline.generate_spec(ADA)
    assert spec["ok"] is True
    pid = spec["id"]

    manifest = pipeline.store.load_manifest(pid)
    soup = BeautifulSoup(manifest.file("index.html").content, "html.parser")
    about_paragraphs = [p for p in soup.find(id="about").find_all("p") if p.get_text(strip=True)]
    assert len(about_paragraphs) >= 2
    assert any(li.get_text() == "Go" for li in soup.find(id="skills").find_all("li"))
    card = soup.find(id="projects").article
    assert card.h3.get_text() == "X" and card.p.get_text() == "Y"

    assets = pipeline.generate_assets(pid)
    assert assets == {"ok": True, "id": pid}
    # 4 needs x 2 credentials x 2 image models, all rotated through
    assert adapter.image_calls == 4 * 2 * 2
    manifest = pipeline.store.load_manifest(pid)
    assert unresolved_tokens(manifest.files) == set()
    assert "./assets/hero.png" in manifest.file("index.html").content
    for name in ("hero.png", "project_1.png", "project_2.png", "project_3.png"):
        assert (tmp_path / pid / "assets" / name).read_bytes().startswith(b"\x89PNG")

    built = pipeline.build(pid)
    assert built["ok"] is True
    assert built["previewUrl"] == f"http://test/preview/{pid}/build/index.html"
    assert built["downloadUrl"] == f"http://test/download/{pid}"
    build_dir = tmp_path / pid / "build"
    for path in build_dir.rglob("*"):
        assert ".." not in path.relative_to(build_dir).parts
    assert not (tmp_path / pid / "escape.txt").exists()
    with zipfile.ZipFile(tmp_path / pid / "site.zip") as zf:
        assert "assets/project_1.png" in zf.namelist()


def test_extraction_is_retried_with_strict_reminder(tmp_path):
    adapter = FakeAdapter(texts=["I think your site should be blue.", _wrapped(GENERATED)])
    result = _pipeline(tmp_path, adapter).generate_spec(ADA)
    assert result["ok"] is True
    assert len(adapter.text_prompts) == 2
    assert STRICT_JSON_REMINDER not in adapter.text_prompts[0]
    assert adapter.text_prompts[1].endswith(STRICT_JSON_REMINDER)


def test_extraction_failure_writes_nothing(tmp_path):
    adapter = FakeAdapter(texts=["nope", "still nope", "{not json}"])
    result = _pipeline(tmp_path, adapter).generate_spec(ADA)
    assert result["ok"] is False
    assert result["status"] == 500
    assert "No JSON object" in result["error"]
    assert list(tmp_path.iterdir()) == []


def test_text_rotation_reaches_backup_credential(tmp_path):
    adapter = FakeAdapter(texts=[TransientProviderError("HTTP 429: quota", status=429), _wrapped(GENERATED)])
    assert _pipeline(tmp_path, adapter).generate_spec(ADA)["ok"] is True
    assert len(adapter.text_prompts) == 2


def test_fatal_text_error_is_reported(tmp_path):
    adapter = FakeAdapter(texts=[FatalProviderError("HTTP 403: API key not valid", status=403)])
    result = _pipeline(tmp_path, adapter).generate_spec(ADA)
    assert result["ok"] is False
    assert "API key not valid" in result["error"]
    assert len(adapter.text_prompts) == 1


def test_no_credentials_is_a_configuration_failure(tmp_path):
    adapter = FakeAdapter(texts=[_wrapped(GENERATED)])
    result = _pipeline(tmp_path, adapter, credentials=()).generate_spec(ADA)
    assert result["ok"] is False
    assert result["status"] == 503
    assert adapter.text_prompts == []


def test_prompt_mode_brief(tmp_path):
    adapter = FakeAdapter(texts=[_wrapped(GENERATED)])
    result = _pipeline(tmp_path, adapter).generate_spec({"prompt": "portfolio for a pastry chef"})
    assert result["ok"] is True
    assert "portfolio for a pastry chef" in adapter.text_prompts[0]
    assert "Name: " not in adapter.text_prompts[0]


def test_asset_and_build_phases_need_a_known_id(tmp_path):
    pipeline = _pipeline(tmp_path, FakeAdapter())
    assert pipeline.generate_assets(None)["status"] == 400
    assert pipeline.generate_assets("zzzz9999")["status"] == 404
    assert pipeline.build("../../etc")["status"] == 404
    assert pipeline.build("")["status"] == 400
