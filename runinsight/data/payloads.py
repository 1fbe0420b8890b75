"""
Upstream Payload Parsing
========================

Normalizes every upstream response shape into typed records at the
boundary. Each endpoint has a small, explicit set of accepted shapes;
anything else raises UnexpectedShapeError instead of quietly becoming
an empty list.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from runinsight.gateway.errors import UnexpectedShapeError
from .schemas import (
    ChatbotCategoryStat,
    EngagementEvent,
    EngagementStats,
    RawIdentityRecord,
    TrainingSession,
    empty_category_counts,
)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        return f"object with keys {sorted(payload)[:10]}"
    return type(payload).__name__


def _unwrap_list(payload: Any, envelope_path: tuple, source: str) -> List[Any]:
    """Return the record list from either a plain list or its known envelope."""
    if isinstance(payload, list):
        return payload

    if isinstance(payload, dict):
        node = payload
        for key in envelope_path:
            if not isinstance(node, dict) or key not in node:
                break
            node = node[key]
        else:
            if isinstance(node, list):
                return node

    raise UnexpectedShapeError(f"Unexpected {source} payload: {_describe(payload)}")


def _validate_items(items: List[Any], model: Type[RecordT], source: str, **defaults) -> List[RecordT]:
    """Validate list items, skipping (and logging) the ones that do not fit."""
    records = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            records.append(model.model_validate({**defaults, **item}))
        except ValidationError as e:
            skipped += 1
            logger.debug(f"Skipping malformed {source} record: {e.errors()[:1]}")

    if skipped:
        logger.warning(f"Skipped {skipped} malformed {source} records out of {len(items)}")
    return records


def parse_identity_bulk(payload: Any) -> List[RawIdentityRecord]:
    """
    Parse the bulk identity listing.

    Accepted shapes: ``{"clients": {"data": [...]}}`` or a plain list.
    Duplicate ids keep their first occurrence.
    """
    items = _unwrap_list(payload, ("clients", "data"), "identity")
    records = _validate_items(items, RawIdentityRecord, "identity")

    unique: Dict[int, RawIdentityRecord] = {}
    for record in records:
        if record.user_id in unique:
            logger.warning(f"Duplicate identity record for user {record.user_id} ignored")
            continue
        unique[record.user_id] = record
    return list(unique.values())


def parse_engagement_events(payload: Any) -> List[EngagementEvent]:
    """
    Parse the bulk engagement log.

    Accepted shapes: ``{"success": true, "data": [...]}`` or a plain list.
    """
    if isinstance(payload, dict) and payload.get("success") is False:
        raise UnexpectedShapeError("Engagement log endpoint reported success=false")
    items = _unwrap_list(payload, ("data",), "engagement")
    return _validate_items(items, EngagementEvent, "engagement")


def parse_engagement_summary(payload: Any, user_id: int) -> EngagementStats:
    """Parse a per-user engagement aggregate (a flat object, optionally under ``data``)."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict):
        raise UnexpectedShapeError(f"Unexpected engagement summary for user {user_id}: {_describe(payload)}")

    try:
        return EngagementStats.model_validate({**payload, "user_id": user_id})
    except ValidationError as e:
        raise UnexpectedShapeError(f"Invalid engagement summary for user {user_id}: {e}") from e


def parse_training_sessions(payload: Any, user_id: Optional[int] = None) -> List[TrainingSession]:
    """
    Parse training sessions.

    Accepted shapes: ``{"trainings": [...]}`` or a plain list. Per-user
    responses do not repeat the user id, so it is supplied by the caller.
    """
    if isinstance(payload, dict) and "trainings" not in payload:
        raise UnexpectedShapeError(f"Unexpected trainings payload: {_describe(payload)}")
    items = _unwrap_list(payload, ("trainings",), "trainings")
    defaults = {"user_id": user_id} if user_id is not None else {}
    return _validate_items(items, TrainingSession, "trainings", **defaults)


def parse_chatbot_stats(
    payload: Any,
    user_id: int,
    category_map: Dict[str, str],
    total_field: str = "total_preguntas",
    score_field: str = "score_ponderado",
) -> ChatbotCategoryStat:
    """
    Parse per-user chatbot stats and map provider categories onto the taxonomy.

    Accepted shape: ``{"success": true, "stats": {...}}``.
    """
    if not (isinstance(payload, dict) and payload.get("success") and isinstance(payload.get("stats"), dict)):
        raise UnexpectedShapeError(f"Unexpected chatbot stats for user {user_id}: {_describe(payload)}")

    stats = payload["stats"]
    counts = empty_category_counts()
    try:
        for provider_field, category in category_map.items():
            counts[category] = int(stats.get(provider_field) or 0)

        return ChatbotCategoryStat(
            user_id=user_id,
            questions_per_category=counts,
            total_questions=int(stats.get(total_field) or 0),
            weighted_score=float(stats.get(score_field) or 0),
        )
    except (TypeError, ValueError) as e:
        raise UnexpectedShapeError(f"Invalid chatbot stats for user {user_id}: {e}") from e
