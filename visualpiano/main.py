"""FastAPI application - serves API and frontend."""

from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from visualpiano.api.upload import router as upload_router
from visualpiano.api.websocket import router as ws_router

app = FastAPI(title="Visual Piano", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Serve frontend (the renderer lives there)
FRONTEND_DIR = Path(__file__).parent.parent / "frontend"
FRONTEND_ROOT = FRONTEND_DIR.resolve() if FRONTEND_DIR.exists() else None

if FRONTEND_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(FRONTEND_DIR)), name="static")


def _safe_frontend_file(path: str) -> Path | None:
    if FRONTEND_ROOT is None:
        return None
    candidate = (FRONTEND_ROOT / path.lstrip("/")).resolve()
    if candidate != FRONTEND_ROOT and FRONTEND_ROOT not in candidate.parents:
        return None
    return candidate if candidate.is_file() else None


def _index_response() -> FileResponse:
    index_file = FRONTEND_DIR / "index.html"
    if not index_file.is_file():
        raise HTTPException(404, "Frontend not installed")
    return FileResponse(str(index_file))


@app.get("/")
async def index():
    return _index_response()


@app.get("/{path:path}")
async def catch_all(path: str):
    file_path = _safe_frontend_file(path)
    if file_path is not None:
        return FileResponse(str(file_path))
    return _index_response()


def run():
    import logging

    import uvicorn
    from visualpiano.config import settings

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run(
        "visualpiano.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
