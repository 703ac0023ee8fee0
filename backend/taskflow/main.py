import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskflow.api.router import api_router
from taskflow.core.config import get_settings
from taskflow.core.deps import email_dispatcher
from taskflow.core.errors import ServiceError
from taskflow.core.logging_setup import setup_logging
from taskflow.db.models import Base
from taskflow.db.seed import seed_roles
from taskflow.db.session import SessionLocal, engine
from taskflow.ws.routes import router as ws_router

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    logger.info("Starting %s (%s)", settings.app_name, settings.app_env)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_roles(db)
    finally:
        db.close()

    await email_dispatcher.start()
    try:
        yield
    finally:
        await email_dispatcher.stop()
        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.parsed_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred"})


app.include_router(api_router)
app.include_router(ws_router, prefix="/ws")


@app.get("/health")
def health():
    return {"status": "ok"}
