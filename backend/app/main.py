import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import get_settings
from app.core.database import engine, Base
from app.core.errors import RelayError, relay_error_handler
from app.core.middleware import CSRFMiddleware
from app.core.rls import apply_row_level_security
from app.api.v1 import router as api_router
from app.api.functions import router as functions_router
# Import all models to register them with Base
from app import models  # noqa: F401

settings = get_settings()

_log_level = os.getenv("LOG_LEVEL", "DEBUG" if settings.debug else "INFO").upper()
logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables and row-level security policies on startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await apply_row_level_security(conn)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Projects with system prompts, chat threads and file uploads backed by OpenAI",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_exception_handler(RelayError, relay_error_handler)

app.add_middleware(CSRFMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With",
        "X-Client-Info", "Apikey", "Idempotency-Key",
    ],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(functions_router, prefix=settings.functions_prefix)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
