"""
FastAPI application entry point for the media relay.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.config import get_settings
from relay.dependencies import RelayContext, build_context
from relay.errors import install_error_handlers
from relay.routes import router


def create_app(context: Optional[RelayContext] = None) -> FastAPI:
    context = context or build_context(get_settings())
    app = FastAPI(title="Media Relay", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=context.settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.context = context
    install_error_handlers(app)
    app.include_router(router)
    return app
