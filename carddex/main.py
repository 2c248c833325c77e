from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carddex.api import backup_router, devices_router, health_router, integrity_router
from carddex.config import settings
from carddex.db.database import init_db
from carddex.models.failure import CarddexError


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("carddex"),
    lifespan=lifespan,
)


@app.exception_handler(CarddexError)
async def carddex_error_handler(_request: Request, exc: CarddexError) -> JSONResponse:
    """Known failures become {kind, message, detail} with their own status code."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_detail().model_dump(mode="json"))


app.include_router(backup_router)
app.include_router(devices_router)
app.include_router(health_router)
app.include_router(integrity_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
