"""
RunInsight Prediction Service
=============================

Churn risk prediction for fitness app users: collects behavioural data from
the upstream gateway, derives engagement features and scores each user with
the external prediction model, with a heuristic fallback.

Modules:
    - gateway: Upstream HTTP client with retry and backoff
    - data: Data collection, batching and joining
    - features: Composite feature derivation
    - models: Prediction dispatch and fallback heuristic
    - cache: Single-flight result cache
    - api: FastAPI backend
    - utils: Utility functions
"""

__version__ = "1.0.0"
