# printables/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import logging

from printables.config.settings import settings
from printables.delivery.api.printables import router
from printables.domain.printable_service import PrintableService
from printables.infrastructure.pdf.compositor import PrintableCompositor
from printables.infrastructure.storage.r2_store import R2Store

logger = logging.getLogger("uvicorn.error")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Compositing is CPU-bound, boto3 calls block: one pool for each
    app.state.cpu_executor = ThreadPoolExecutor(max_workers=max(1, settings.CPU_WORKERS), thread_name_prefix="compose")
    app.state.io_executor = ThreadPoolExecutor(max_workers=max(1, settings.IO_WORKERS), thread_name_prefix="r2")
    logger.info(f"Service '{settings.PROJECT_NAME}' starting (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Executors created: cpu={settings.CPU_WORKERS}, io={settings.IO_WORKERS} workers.")

    # Fails fast when the R2 settings are incomplete
    store = R2Store(settings, executor=app.state.io_executor)
    app.state.printable_service = PrintableService(
        store=store,
        compositor=PrintableCompositor(),
        cpu_executor=app.state.cpu_executor,
    )
    logger.info(f"Printable service ready (bucket: {store.bucket}).")
    yield
    logger.info("Shutting down executors...")
    app.state.cpu_executor.shutdown(wait=True)
    app.state.io_executor.shutdown(wait=True)
    logger.info("Service stopped.")

app = FastAPI(
    title="Printables Service",
    description="Generates print-ready event flyers, merchandise prints and CD jackets from PDF templates",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Printables Service", "version": "1.0.0", "status": "ok"}

@app.get("/health")
async def health_check():
    ready = getattr(app.state, "printable_service", None) is not None
    return {"status": "ok", "service": "Printables 1.0", "service_ready": ready}
