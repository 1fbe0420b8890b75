"""Single-flight result cache around prediction passes."""

from .errors import PassConflictError
from .result_cache import CacheStatus, PassMetadata, PassResult, PassState, ResultCache

__all__ = ["ResultCache", "PassResult", "PassMetadata", "PassState", "CacheStatus", "PassConflictError"]
