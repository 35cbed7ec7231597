import logging
import os
import time
import uuid
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from siteforge.config import Settings
from siteforge.errors import UnknownProjectError
from siteforge.models import ProjectRequest, UserBrief
from siteforge.pipeline import SitePipeline

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

log = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def _default_pipeline() -> SitePipeline:
    settings = get_settings()
    if not settings.has_credentials:
        log.warning("No GEMINI_API_KEY configured; generation requests will fail with 503")
    return SitePipeline(settings)


def get_pipeline() -> SitePipeline:
    return _default_pipeline()


app = FastAPI(title="siteforge")

allow_origins = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_projects_dir = get_settings().projects_dir
_projects_dir.mkdir(parents=True, exist_ok=True)
app.mount("/preview", StaticFiles(directory=str(_projects_dir), html=True), name="preview")


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = str(uuid.uuid4())
    start = time.time()
    request.state.request_id = rid
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        dur_ms = int((time.time() - start) * 1000)
        log.info(
            "rid=%s method=%s path=%s status=%s dur_ms=%d",
            rid,
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            dur_ms,
        )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc or 'body'}: {err.get('msg', 'invalid')}")
    log.warning("rejected request path=%s: %s", request.url.path, "; ".join(problems))
    return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid request: " + "; ".join(problems)})


app.add_exception_handler(RequestValidationError, _validation_error)


def _envelope_response(result: dict) -> JSONResponse:
    if result.get("ok"):
        return JSONResponse(result)
    status = int(result.pop("status", 500))
    return JSONResponse(status_code=status, content=result)


@app.get("/api/health")
def health(pipeline: SitePipeline = Depends(get_pipeline)):
    return pipeline.health()


@app.post("/api/generate-spec")
def generate_spec(brief: UserBrief, pipeline: SitePipeline = Depends(get_pipeline)):
    return _envelope_response(pipeline.generate_spec(brief))


@app.post("/api/generate-assets")
def generate_assets(req: ProjectRequest, pipeline: SitePipeline = Depends(get_pipeline)):
    return _envelope_response(pipeline.generate_assets(req.id))


@app.post("/api/build")
def build(req: ProjectRequest, pipeline: SitePipeline = Depends(get_pipeline)):
    return _envelope_response(pipeline.build(req.id))


@app.get("/download/{project_id}")
def download(project_id: str, pipeline: SitePipeline = Depends(get_pipeline)):
    try:
        archive = pipeline.store.archive_path(project_id)
    except UnknownProjectError as exc:
        return JSONResponse(status_code=404, content={"ok": False, "error": str(exc)})
    if not archive.is_file():
        return JSONResponse(status_code=404, content={"ok": False, "error": "Archive not built"})
    return FileResponse(str(archive), media_type="application/zip", filename="site.zip")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("siteforge.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8787")))
