"""Feature composition module."""

from .composer import ComposedFeatures, FeatureComposer

__all__ = ["ComposedFeatures", "FeatureComposer"]
