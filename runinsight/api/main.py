"""
FastAPI Main Application
========================

REST API for the churn prediction service. A thin layer over ResultCache:
token pass-through, input validation and error-to-status mapping.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import get_config
from runinsight import __version__
from runinsight.cache import CacheStatus, PassConflictError, PassMetadata, ResultCache
from runinsight.models import PredictionResult
from runinsight.utils import setup_logging_from_config
from .schemas import HealthResponse, PredictionsResponse, RefreshResponse

router = APIRouter(prefix="/predictions", tags=["Predictions"])


def get_result_cache(request: Request) -> ResultCache:
    """Result cache attached to the running application."""
    result_cache = request.app.state.result_cache
    if result_cache is None:
        raise HTTPException(status_code=503, detail="Prediction service is not ready")
    return result_cache


def require_token(
    token: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> str:
    """Caller credential from the ``token`` or ``Authorization`` header."""
    raw = (token or authorization or "").strip()
    if raw.lower().startswith("bearer "):
        raw = raw[len("bearer "):].strip()

    if not raw:
        raise HTTPException(
            status_code=401,
            detail="Token required: provide it in the 'token' or 'Authorization' header"
        )
    return raw


def parse_user_id(user_id: str) -> int:
    """Validate a user id path parameter."""
    try:
        value = int(user_id)
    except ValueError:
        value = 0

    if value <= 0:
        raise HTTPException(status_code=400, detail="Invalid user id: must be a positive integer")
    return value


def _conflict(e: PassConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=f"{e}. Try again later."
    )


@router.get("/all", response_model=PredictionsResponse)
async def get_all_predictions(
    token: str = Depends(require_token),
    result_cache: ResultCache = Depends(get_result_cache),
):
    """Cached predictions for every user, computed on demand when the cache is empty or expired."""
    logger.info("Request for all user predictions")
    try:
        result = await result_cache.get_all(token)
    except PassConflictError as e:
        raise _conflict(e)
    except Exception as e:
        logger.error(f"Error getting predictions: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Predictions sent: {len(result.predictions)} users")
    return PredictionsResponse(
        predictions=result.predictions,
        metadata=result.metadata,
        collection_errors=result.collection_errors,
        prediction_errors=result.prediction_errors,
    )


@router.get("/user/{user_id}", response_model=PredictionResult)
async def get_user_prediction(
    user_id: str,
    token: str = Depends(require_token),
    result_cache: ResultCache = Depends(get_result_cache),
):
    """Cached prediction for one user. Never triggers a pass."""
    uid = parse_user_id(user_id)
    logger.info(f"Request for prediction of user {uid}")

    prediction = result_cache.get_user(uid)
    if prediction is None:
        raise HTTPException(
            status_code=404,
            detail=f"No prediction found for user {uid}. Call /predictions/all first to generate predictions."
        )
    return prediction


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_predictions(
    token: str = Depends(require_token),
    result_cache: ResultCache = Depends(get_result_cache),
):
    """Invalidate the cache and recompute every prediction."""
    logger.info("Request to refresh predictions")
    try:
        result = await result_cache.refresh(token)
    except PassConflictError as e:
        raise _conflict(e)
    except Exception as e:
        logger.error(f"Error refreshing predictions: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Refresh completed: {len(result.predictions)} users processed")
    return RefreshResponse(
        predictions=result.predictions,
        metadata=result.metadata,
        collection_errors=result.collection_errors,
        prediction_errors=result.prediction_errors,
        processing_time_ms=result.processing_time_ms,
    )


@router.get("/status", response_model=CacheStatus)
async def get_status(result_cache: ResultCache = Depends(get_result_cache)):
    """Pass state, last refresh time and cache presence."""
    return result_cache.status()


@router.get("/metadata", response_model=PassMetadata)
async def get_metadata(result_cache: ResultCache = Depends(get_result_cache)):
    """Tier counts of the cached result set."""
    cached = result_cache.get_cached()
    if cached is None:
        raise HTTPException(
            status_code=404,
            detail="No cached predictions. Use /predictions/refresh to generate them."
        )
    return cached.metadata


def create_app(result_cache: Optional[ResultCache] = None, config: Optional[dict] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        result_cache: Pre-built cache (tests); built from config at startup when None
        config: Configuration dictionary

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="RunInsight Prediction API",
        description="Churn risk predictions for fitness app users",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.result_cache = result_cache
    owns_cache = result_cache is None

    @app.on_event("startup")
    async def startup_event():
        """Execute on application startup."""
        if app.state.result_cache is None:
            app_config = config or get_config()
            setup_logging_from_config(app_config)
            app.state.result_cache = ResultCache.from_config(app_config)
        logger.info("RunInsight Prediction API started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close outbound HTTP clients."""
        if owns_cache and app.state.result_cache is not None:
            await app.state.result_cache.aclose()

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Check API health status."""
        return HealthResponse(
            status="OK",
            service="RunInsight Prediction Service",
            version=__version__,
            timestamp=datetime.now(timezone.utc)
        )

    app.include_router(router)
    return app


app = create_app()


# Run with: uvicorn runinsight.api.main:app --reload
if __name__ == "__main__":
    import uvicorn

    config = get_config()
    api_config = config.get("api", {})

    uvicorn.run(
        "runinsight.api.main:app",
        host=api_config.get("host", "0.0.0.0"),
        port=api_config.get("port", 3000),
        reload=api_config.get("reload", False)
    )
