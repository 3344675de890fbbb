# app/main.py
import os
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.modules.router import router as modules_router
from app.services.background_tasks import drain_tasks
from core.config import Settings, perform_warmup, settings, wire_services
from core.logging import get_logger

logger = get_logger(__name__)


def create_app(config: Optional[Settings] = None, wire: bool = True) -> FastAPI:
    """Build the API; ``wire=False`` leaves app.state empty for tests that inject fakes."""
    config = config or settings
    app = FastAPI(title=config.PROJECT_NAME, version="1.0.0")
    if wire:
        wire_services(app, config)
    else:
        app.state.settings = config
    app.include_router(modules_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.perf_counter()
        logger.info(f"Incoming request: {request.method} {request.url.path}")
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        logger.info(f"Response status: {response.status_code} | Time: {process_time:.2f}ms")
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Invalid request to {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid or missing fields in the request body"})

    @app.api_route("/healthz", methods=["GET", "HEAD"], include_in_schema=False)
    async def healthz():
        return JSONResponse({"status": "ok"})

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting governed RAG chat API...")
        if not wire:
            return
        from app.services.memory.init_db import init_database

        if not await init_database():
            logger.warning("Chat history features may not work properly")
        await perform_warmup(app)
        logger.info("Application startup completed successfully")

    @app.on_event("shutdown")
    async def shutdown_event():
        await drain_tasks()
        for name in ("token_broker", "policy_gateway"):
            service = getattr(app.state, name, None)
            if service is not None:
                await service.aclose()
        backend = getattr(app.state, "backend", None)
        if backend is not None:
            await backend.vector_store.close()
        logger.info("Application stopped")

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app.main:app", host="0.0.0.0", port=port)
