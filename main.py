# main.py

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from api.endpoints import files, status
from core.config import APP_HOST, APP_PORT, CORS_ORIGINS, LOG_LEVEL, PUBLIC_DIR
from core.lifespan import lifespan

# Logging setup
logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)


def create_app(public_dir: str = PUBLIC_DIR, use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="GTFS Relay",
        description="Repackages the regional and suburban GTFS feeds into one archive and keeps it fresh.",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    # --- CORS & compression ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.get("/", response_class=PlainTextResponse, tags=["Status"], summary="Liveness check")
    async def root():
        return "Hello world!"

    app.include_router(status.router, prefix="/api")
    app.include_router(files.router, prefix="/api")

    # Published archive and flat files; mounted last so API routes win
    app.mount("/", StaticFiles(directory=public_dir, check_dir=False), name="public")
    return app


app = create_app()


# --- Run the server (local development) ---
if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting server on http://{APP_HOST}:{APP_PORT}")
    # reload=True would run the startup pipeline twice
    uvicorn.run("main:app", host=APP_HOST, port=APP_PORT, reload=False)
