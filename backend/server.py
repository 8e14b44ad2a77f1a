"""
Invoice Archive Hub - Main Server

Routes are organized in /routes/. The durable store is Mongo-backed when
MONGO_URL is set, otherwise files under ARCHIVE_STORAGE_DIR.
"""

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from contextlib import asynccontextmanager
import logging

from routes import archive
from services.sharepoint_archive import (
    ArchiveSettings,
    GraphTransport,
    LocalFileStore,
    MongoFileStore,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = ArchiveSettings.from_env()

mongo_client = None
transport = None


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global mongo_client, transport

    logger.info("Starting Invoice Archive Hub...")

    if settings.mongo_url:
        mongo_client = AsyncIOMotorClient(settings.mongo_url)
        db = mongo_client[settings.db_name]
        await db.archive_files.create_index("path", unique=True)
        store = MongoFileStore(db.archive_files)
        logger.info("Durable store: Mongo collection %s.archive_files", settings.db_name)
    else:
        store = LocalFileStore(settings.storage_dir)
        logger.info("Durable store: local directory %s", settings.storage_dir)

    transport = GraphTransport(settings)
    archive.set_dependencies(settings, transport, store)

    logger.info("Invoice Archive Hub started successfully")

    yield

    logger.info("Shutting down Invoice Archive Hub...")
    await transport.aclose()
    if mongo_client:
        mongo_client.close()


# ==================== APP SETUP ====================
app = FastAPI(
    title="Invoice Archive Hub",
    description="Archive invoice PDFs and metadata into SharePoint and Excel",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Router with /api prefix
api_router = APIRouter(prefix="/api")
api_router.include_router(archive.router)


@api_router.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": "invoice-archive-hub"
    }


app.include_router(api_router)


# ==================== ROOT ENDPOINTS ====================
@app.get("/")
async def root():
    return {
        "service": "Invoice Archive Hub",
        "version": "1.0.0",
        "status": "running"
    }
