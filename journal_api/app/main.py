import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import BatchUpdateError, JournalError
from .routes import benchmarks, imports, metrics, strategies, trades
from .settings import configure_logging, get_settings

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="Options Journal API", version="0.1.0", docs_url="/docs")

cors_origins = settings.cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[cors_origins] if cors_origins != "*" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


@app.exception_handler(JournalError)
async def journal_error_handler(request: Request, exc: JournalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = {"detail": exc.message}
    if isinstance(exc, BatchUpdateError):
        content["failed_ids"] = exc.failed_ids
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health", tags=["health"])
async def health() -> JSONResponse:
    return JSONResponse({"status": "ok"})


app.include_router(imports.router)
app.include_router(trades.router)
app.include_router(metrics.router)
app.include_router(strategies.router)
app.include_router(benchmarks.router)
