from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import deps
from app.api.routes import projects, results, search
from app.config import settings
from app.errors import ExpertSearchError, InvalidRequest
from app.services.logger import log_event


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    yield
    # Shutdown
    await deps.shutdown_polling()


app = FastAPI(
    title="Expert Sourcing",
    description="Expert sourcing projects backed by asynchronous deep research people search",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExpertSearchError)
async def expert_search_error_handler(request: Request, exc: ExpertSearchError):
    status_code = 400 if isinstance(exc, InvalidRequest) else 500
    details = getattr(exc, "details", "") or exc.__class__.__name__
    log_event(
        "request_failed",
        str(exc),
        path=request.url.path,
        status_code=status_code,
        error_type=exc.__class__.__name__,
    )
    return JSONResponse(status_code=status_code, content={"error": str(exc), "details": details})


# Routes
app.include_router(search.router)
app.include_router(results.router)
app.include_router(projects.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "expertsourcing"}
