"""
FastAPI Main Application for Molecule Generation Studio
"""
from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager
from typing import List, Optional
from datetime import datetime
import httpx
from loguru import logger

from models import (
    AuthContext, GenerationFormInput, GenerationSessionState, HistoryRecord,
    UserCreate, UserProfile
)
from database import create_session_factory
from services.generation_proxy import GenerationProxy
from services.generation_orchestrator import GenerationOrchestrator, HistoryEntryNotFound
from services.history_store import HistoryStore, HistoryStoreError
from services.user_directory import UserDirectory, UserExistsError
from services.structure_renderer import StructureRenderer, StructureRenderError
from config import settings


PROXY_PATH = "/api/generate-molecules"


# Initialize services
session_factory = create_session_factory()
history_store = HistoryStore(session_factory)
user_directory = UserDirectory(session_factory)
generation_proxy = GenerationProxy()
structure_renderer = StructureRenderer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting Molecule Generation Studio")
    yield
    await orchestrator.client.aclose()
    logger.info("Shutting down Molecule Generation Studio")


app = FastAPI(
    title="Molecule Generation Studio",
    description="AI-guided molecule generation with per-user history",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_orchestrator(store: HistoryStore) -> GenerationOrchestrator:
    """Orchestrator that reaches the proxy route of this app in-process."""
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://molgen.internal",
        timeout=settings.request_timeout
    )
    return GenerationOrchestrator(store, client=client, proxy_url=PROXY_PATH)


orchestrator = build_orchestrator(history_store)


def get_auth_context(x_user_email: Optional[str] = Header(None)) -> Optional[AuthContext]:
    """Resolve the caller's session email into an explicit auth context"""
    return user_directory.resolve_context(x_user_email)


def get_session_id(x_session_id: Optional[str] = Header(None)) -> Optional[str]:
    """Client session (browser tab) whose displayed state a request reads and writes"""
    return x_session_id.strip() if x_session_id and x_session_id.strip() else None


# ============= API Endpoints =============

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Molecule Generation Studio",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "proxy": PROXY_PATH,
            "generate": "/api/molecules/generate",
            "session": "/api/session",
            "history": "/api/history",
            "view_history": "/api/history/{record_id}/view",
            "render_svg": "/api/render/svg",
            "render_png": "/api/render/png",
            "users": "/api/users"
        }
    }


@app.post(PROXY_PATH)
async def generate_molecules_proxy(request: Request):
    """
    Relay a generation request to the upstream model service

    The body is forwarded unchanged with the server's bearer credential.
    Upstream errors come back with the upstream status and raw error text.
    """
    try:
        body = await request.json()
    except Exception as e:
        logger.error(f"Proxy received an unreadable body: {e}")
        return JSONResponse(content={"error": str(e)}, status_code=500)

    result = await generation_proxy.forward(body)
    return JSONResponse(content=result.body, status_code=result.status_code)


@app.post("/api/molecules/generate", response_model=GenerationSessionState)
async def generate_molecules(
    form: GenerationFormInput,
    auth: Optional[AuthContext] = Depends(get_auth_context),
    session_id: Optional[str] = Depends(get_session_id)
):
    """
    Submit the generation form for the caller's session

    Failures are reported through the returned state's alert, not as an
    HTTP error, and the displayed molecule list is left empty.
    """
    session = orchestrator.open_session(auth, session_id)
    return await orchestrator.submit(session, form)


@app.get("/api/session", response_model=GenerationSessionState)
def get_session(
    auth: Optional[AuthContext] = Depends(get_auth_context),
    session_id: Optional[str] = Depends(get_session_id)
):
    """Current state of the caller's generation page"""
    return orchestrator.open_session(auth, session_id).state


@app.get("/api/history", response_model=List[HistoryRecord])
def get_history(auth: Optional[AuthContext] = Depends(get_auth_context)):
    """The caller's generation history, oldest first"""
    if auth is None:
        return []

    try:
        return history_store.list_by_user(auth.user_id)
    except HistoryStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/history/{record_id}/view", response_model=GenerationSessionState)
def view_history_entry(
    record_id: str,
    auth: Optional[AuthContext] = Depends(get_auth_context),
    session_id: Optional[str] = Depends(get_session_id)
):
    """Display a stored batch in place of the current molecules"""
    session = orchestrator.open_session(auth, session_id)
    try:
        return orchestrator.select_history_entry(session, record_id)
    except HistoryEntryNotFound:
        raise HTTPException(status_code=404, detail="History record not found")


@app.get("/api/render/svg")
async def render_svg(
    smiles: str,
    size: int = Query(settings.render_default_size, ge=settings.render_min_size, le=settings.render_max_size)
):
    """2D structure diagram as SVG"""
    try:
        svg = structure_renderer.to_svg(smiles, size=(size, size))
    except StructureRenderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"SVG rendering failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return Response(content=svg, media_type="image/svg+xml")


@app.get("/api/render/png")
async def render_png(
    smiles: str,
    size: int = Query(settings.render_default_size, ge=settings.render_min_size, le=settings.render_max_size)
):
    """2D structure diagram as PNG"""
    try:
        image_data = structure_renderer.to_png(smiles, size=(size, size))
    except StructureRenderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"PNG rendering failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return Response(content=image_data, media_type="image/png")


@app.post("/api/users", response_model=UserProfile, status_code=201)
def create_user(user: UserCreate):
    """Register a user so their session email resolves to a history owner"""
    if not user.email.strip():
        raise HTTPException(status_code=400, detail="email is required")

    try:
        return user_directory.create_user(user)
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ============= Health Check =============

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "services": {
            "generation_proxy": "ready" if generation_proxy.api_key else "missing credential",
            "history_store": "ready",
            "structure_renderer": "ready"
        }
    }


# ============= Main Entry Point =============

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
