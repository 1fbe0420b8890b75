"""FastAPI backend module."""

from .main import app, create_app
from .schemas import PredictionsResponse, RefreshResponse

__all__ = ["app", "create_app", "PredictionsResponse", "RefreshResponse"]
