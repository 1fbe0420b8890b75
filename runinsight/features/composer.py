"""
Feature Composer
================

Composite engagement features derived from a joined user profile.
"""

from pydantic import BaseModel

from runinsight.data.schemas import CombinedUserProfile
from runinsight.utils import safe_divide

# Days in the activity ratio's reference period
ACTIVITY_PERIOD_DAYS = 7


class ComposedFeatures(BaseModel):
    """Composite ratios sent to the prediction service."""

    activity_ratio: float = 0.0
    usage_intensity: float = 0.0
    training_consistency: float = 0.0

    # Kept at zero: the prediction service schema expects these fields,
    # no trend algorithm is defined for them yet.
    trend_time: float = 0.0
    trend_views: float = 0.0
    trend_trainings: float = 0.0


class FeatureComposer:
    """Compute composite features for a profile. Pure, no I/O."""

    def compose(self, profile: CombinedUserProfile) -> ComposedFeatures:
        """
        Derive the composite ratios.

        Args:
            profile: Joined user profile

        Returns:
            ComposedFeatures, with every ratio 0 when its denominator is 0
        """
        return ComposedFeatures(
            activity_ratio=safe_divide(profile.active_days, ACTIVITY_PERIOD_DAYS),
            usage_intensity=safe_divide(profile.total_time, profile.views_opened),
            training_consistency=safe_divide(profile.training_count, profile.active_days),
        )
