"""
Prediction Dispatcher
=====================

Sends each profile to the external prediction service and falls back to
the rule-based heuristic whenever that service fails.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from config import get_config
from runinsight.data.schemas import CHATBOT_CATEGORIES, CombinedUserProfile
from runinsight.features import ComposedFeatures, FeatureComposer
from .heuristics import fallback_prediction
from .results import DispatchResult, PredictionError, PredictionResult


class PredictionDispatcher:
    """Obtain a churn prediction for every profile."""

    def __init__(
        self,
        config: Optional[dict] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        composer: Optional[FeatureComposer] = None,
    ):
        """
        Initialize PredictionDispatcher.

        Args:
            config: Configuration dictionary
            http_client: Preconfigured httpx client (tests inject a mock transport)
            composer: Feature composer applied to each profile
        """
        self.config = config or get_config()
        prediction_config = self.config.get("prediction", {})

        self.api_url = prediction_config.get("api_url", "http://localhost:4000/api/text-mining/stats")
        self.timeout = float(prediction_config.get("timeout_seconds", 30))

        self._client = http_client or httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
        )
        self.composer = composer or FeatureComposer()

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_payload(self, profile: CombinedUserProfile, features: ComposedFeatures) -> Dict[str, Any]:
        """Flatten profile, composite features and chatbot breakdown into the request body."""
        payload = profile.model_dump(exclude={"questions_per_category", "chatbot_total_questions", "chatbot_weighted_score"})
        payload.update(features.model_dump())

        for category in CHATBOT_CATEGORIES:
            payload[f"questions_{category}"] = profile.questions_per_category.get(category, 0)
        payload["total_questions"] = profile.chatbot_total_questions
        payload["weighted_score"] = profile.chatbot_weighted_score

        return payload

    async def dispatch(self, profile: CombinedUserProfile, features: ComposedFeatures) -> PredictionResult:
        """
        Predict churn for one profile.

        A single request is made; any failure (timeout, connection error,
        non-2xx status, unusable body) yields the fallback heuristic instead.

        Args:
            profile: Joined user profile
            features: Composite features for the profile

        Returns:
            PredictionResult from the model or the fallback
        """
        payload = self.build_payload(profile, features)
        logger.debug(f"Requesting prediction for user {profile.user_id} from {self.api_url}")

        try:
            response = await self._client.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = PredictionResult.from_model_output(response.json(), profile.user_id)
        except httpx.ConnectError as e:
            logger.warning(f"Prediction service unavailable at {self.api_url}: {e}")
            return self._fallback(profile, features)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Prediction service returned HTTP {e.response.status_code} for user {profile.user_id}")
            return self._fallback(profile, features)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Prediction failed for user {profile.user_id}: {e}")
            return self._fallback(profile, features)

        logger.debug(f"Model prediction received for user {profile.user_id}")
        return result

    def _fallback(self, profile: CombinedUserProfile, features: ComposedFeatures) -> PredictionResult:
        logger.info(f"Using fallback prediction for user {profile.user_id}")
        return fallback_prediction(profile, features)

    async def dispatch_all(self, profiles: List[CombinedUserProfile]) -> DispatchResult:
        """
        Predict churn for every profile, one request at a time.

        A profile whose processing raises is recorded as an error and still
        receives a fallback prediction, so no user is dropped.

        Args:
            profiles: Joined user profiles

        Returns:
            DispatchResult with one prediction per profile plus error records
        """
        logger.info(f"Processing predictions for {len(profiles)} users")
        result = DispatchResult()

        for profile in profiles:
            features = None
            try:
                features = self.composer.compose(profile)
                result.predictions.append(await self.dispatch(profile, features))
            except Exception as e:
                logger.error(f"Error processing prediction for user {profile.user_id}: {e}")
                result.errors.append(PredictionError(user_id=profile.user_id, error=str(e)))
                result.predictions.append(fallback_prediction(profile, features or ComposedFeatures()))

        logger.info(f"Predictions completed: {len(result.predictions)} results, {len(result.errors)} errors")
        return result
