"""Dependency injection for API routes."""
from fastapi import FastAPI, Request

from docchat.services.widget import ChatWidget


def get_widget(app: FastAPI) -> ChatWidget:
    """Get the chat widget engine built at startup."""
    return app.state.widget


def widget_dependency(request: Request) -> ChatWidget:
    return get_widget(request.app)
