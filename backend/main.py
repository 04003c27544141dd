import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from folio.routers import bookmarks, highlights, notes, progress, search, sessions
from folio.services.base_database_service import DEFAULT_DB_PATH
from folio.services.reader_services import (
    DEFAULT_PDF_DIR,
    get_reader_services,
    init_reader_services,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_reader_services(
        db_path=os.getenv("FOLIO_DB_PATH", DEFAULT_DB_PATH),
        pdf_dir=os.getenv("FOLIO_PDF_DIR", DEFAULT_PDF_DIR),
    )
    logger.info("Reader services started")
    yield
    # Flush pending reading positions and deferred highlight deletions
    await get_reader_services().shutdown()
    logger.info("Reader services stopped")


app = FastAPI(title="Folio Reader API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.now()
    logger.info(f">>> Incoming request: {request.method} {request.url.path}")

    try:
        response = await call_next(request)
        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"<<< Response: {request.method} {request.url.path} - Status: {response.status_code} - Duration: {duration:.3f}s"
        )
        return response
    except Exception as e:
        duration = (datetime.now() - start_time).total_seconds()
        logger.error(
            f"!!! Request failed: {request.method} {request.url.path} - Duration: {duration:.3f}s - Error: {str(e)}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500, content={"detail": f"Internal server error: {str(e)}"}
        )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def read_root():
    logger.info("Root endpoint accessed")
    return {"message": "Folio Reader API", "status": "running"}


@app.get("/health")
async def health_check():
    logger.info("Health check endpoint accessed")
    return {"status": "healthy"}


# Include routers
app.include_router(sessions.router)
app.include_router(highlights.router)
app.include_router(search.router)
app.include_router(progress.router)
app.include_router(bookmarks.router)
app.include_router(notes.router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
