import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from docchat.api.routes import session
from docchat.api import websocket
from docchat.core.config import settings as app_settings
from docchat.core.logging_config import configure_logging
from docchat.services.widget import create_widget

configure_logging(app_settings.log_level)
logger = logging.getLogger(__name__)

# Seconds to wait for the store deletion on shutdown
SHUTDOWN_CLEANUP_TIMEOUT = 5.0

app = FastAPI(
    title="Document Chat Widget API",
    version="1.0.0",
    description="Session engine for the embeddable document chat widget"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(session.router, prefix="/api")
app.include_router(websocket.router)


@app.get("/")
async def root():
    return {
        "name": "Document Chat Widget API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.on_event("startup")
async def startup():
    """Build the widget engine unless one was installed already (tests do)."""
    if getattr(app.state, "widget", None) is None:
        app.state.widget = create_widget()
    logger.info("Widget engine ready: %s", app_settings.get_effective_settings())


@app.on_event("shutdown")
async def shutdown():
    """Best-effort deletion of the active store before the loop stops."""
    widget = getattr(app.state, "widget", None)
    if widget is None:
        return
    task = widget.session.teardown()
    if task is not None:
        await asyncio.wait([task], timeout=SHUTDOWN_CLEANUP_TIMEOUT)
