"""
Main application entry point for the dating API.

This module initializes the FastAPI application, configures logging and
CORS, installs the error boundary, mounts locally stored photos and
includes routers for accounts, members, likes and messages.

Serve it with ``uvicorn main:app`` or run ``python main.py``.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- StaticFiles: Serving of locally stored photos
- app.database: Database engine
- app.models: SQLAlchemy models
- app.auth: Account router
- app.members: Members router
- app.likes: Likes router
- app.messages: Messages router
- app.core: Application settings
"""

import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.database import engine
from app import models
from app.auth import router as account_router
from app.members import router as members_router
from app.likes import router as likes_router
from app.messages import router as messages_router
from app.core import get_settings, configure_logging

configure_logging()
logger = logging.getLogger(__name__)

# Create tables (no migrations)
models.Base.metadata.create_all(bind=engine)

settings = get_settings()

# Initialize FastAPI application
app = FastAPI(title="Dating API")

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def error_boundary(request: Request, call_next):
    """
    Convert unhandled exceptions into a generic 500 response.

    Domain errors are rendered by FastAPI before they reach this point.
    """
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report invalid request bodies and parameters as 400 Bad Request."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


# Include routers for application areas
app.include_router(account_router)
app.include_router(members_router)
app.include_router(likes_router)
app.include_router(messages_router)

app.mount(
    settings.MEDIA_URL,
    StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False),
    name="media",
)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Dating API. Visit /docs for Swagger UI"}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
