import json
import os
import tempfile
from pathlib import Path

_ROOT = Path(tempfile.mkdtemp(prefix="siteforge-api-"))
os.environ["PROJECTS_DIR"] = str(_ROOT)

from fastapi.testclient import TestClient  # noqa: E402

from siteforge.config import Settings  # noqa: E402
from siteforge.errors import TransientProviderError  # noqa: E402
from siteforge.main import app, get_pipeline  # noqa: E402
from siteforge.pipeline import SitePipeline  # noqa: E402
from siteforge.store import ProjectStore  # noqa: E402

MANIFEST = {
    "site_name": "Ada",
    "files": [{"path": "index.html", "content": "<h1>{{NAME}}</h1>"}],
    "assetsNeeded": {"heroImage": "", "projectImages": []},
}


class StubAdapter:
    def invoke(self, kind, credential, model, prompt):
        if kind == "image":
            raise TransientProviderError("overloaded", status=503)
        return json.dumps(MANIFEST)


def _client(credentials=("key-abcdefgh1234",)):
    settings = Settings(credentials=credentials, projects_dir=_ROOT, public_base_url="http://testserver")
    pipeline = SitePipeline(settings, adapter=StubAdapter(), store=ProjectStore(_ROOT))
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return TestClient(app)


def teardown_function():
    app.dependency_overrides.clear()


def test_health_reports_models_not_keys():
    r = _client().get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["credentials"] == 1
    assert "gemini-2.5-flash" in body["textModels"]
    assert "key-abcdefgh1234" not in r.text


def test_full_flow_over_http():
    client = _client()
    r = client.post("/api/generate-spec", json={"name": "Ada", "title": "Engineer", "skills": ["Go"]})
    assert r.status_code == 200, r.text
    pid = r.json()["id"]

    r = client.post("/api/generate-assets", json={"id": pid})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "id": pid}

    r = client.post("/api/build", json={"id": pid})
    assert r.status_code == 200
    body = r.json()
    assert body["downloadUrl"] == f"http://testserver/download/{pid}"

    r = client.get(f"/download/{pid}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    assert r.content[:2] == b"PK"

    r = client.get(f"/preview/{pid}/build/index.html")
    assert r.status_code == 200
    assert "Ada" in r.text


def test_missing_id_is_400_and_unknown_id_is_404():
    client = _client()
    assert client.post("/api/generate-assets", json={}).status_code == 400
    r = client.post("/api/build", json={"id": "nosuch01"})
    assert r.status_code == 404
    assert r.json()["ok"] is False
    assert client.get("/download/nosuch01").status_code == 404
    assert client.get("/download/BAD..ID").status_code == 404


def test_no_credentials_is_503():
    r = _client(credentials=()).post("/api/generate-spec", json={"name": "Ada"})
    assert r.status_code == 503
    assert r.json()["ok"] is False


def test_badly_typed_bodies_get_the_failure_envelope():
    client = _client()
    for path, body in [
        ("/api/generate-spec", {"name": 123}),
        ("/api/generate-spec", {"skills": 5}),
        ("/api/generate-spec", {"projects": "abc"}),
        ("/api/generate-assets", {"id": 42}),
        ("/api/build", {"id": 42}),
    ]:
        r = client.post(path, json=body)
        assert r.status_code == 400, (path, body, r.text)
        payload = r.json()
        assert payload["ok"] is False
        assert payload["error"].startswith("Invalid request")
        assert "detail" not in payload
