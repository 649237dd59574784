"""
FastAPI dependencies.
"""
from fastapi import Request

from ..services.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
    """Return the Gateway created by the application lifespan."""
    return request.app.state.gateway
