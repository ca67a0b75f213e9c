"""Record-shape translation between stored, canonical and legacy assessments.

Three shapes meet here:

* stored dicts, either the canonical layout (nested ``config``/``scores``)
  or the older flat layout (``progress``/``score``/``frameworks``/``regions``
  and ``lastUpdated`` directly on the record);
* :class:`AssessmentRecord`, the canonical shape every engine returns;
* :class:`LegacyAssessment`, the flat shape some callers still consume.

Engines only use the read normalization and write canonicalization helpers.
The legacy conversions are reserved for the façade.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from numbers import Real
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from src.core.errors import StatusMappingError, ValidationError, describe_validation_error
from src.domain.models import (
    AssessmentConfig,
    AssessmentRecord,
    AssessmentStatus,
    LegacyAssessment,
    LegacyStatus,
)

_STORAGE_TO_LEGACY: dict[AssessmentStatus, LegacyStatus] = {
    AssessmentStatus.COMPLETED: LegacyStatus.COMPLETED,
    AssessmentStatus.NOT_STARTED: LegacyStatus.NOT_STARTED,
    AssessmentStatus.IN_PROGRESS: LegacyStatus.IN_PROGRESS,
}
_LEGACY_TO_STORAGE: dict[LegacyStatus, AssessmentStatus] = {
    legacy: storage for storage, legacy in _STORAGE_TO_LEGACY.items()
}

INITIAL_STATUS = AssessmentStatus.IN_PROGRESS
_FLAT_SCORE_KEYS = ("progress", "score")
_FLAT_LEGACY_KEYS = ("progress", "score", "frameworks", "regions", "lastUpdated")
_IMMUTABLE_KEYS = ("id", "userId", "createdAt")
_IGNORED_KEYS = ("updatedAt", "lastUpdated")
_UPDATABLE_KEYS = frozenset(
    {"name", "domain", "status", "scores", "config", "progress", "score", "frameworks", "regions"}
)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


# --------------------------------------------------------------------------- status


def to_legacy_status(status: AssessmentStatus | str) -> LegacyStatus:
    """Map a storage status to the legacy vocabulary, failing on unmapped values."""
    try:
        return _STORAGE_TO_LEGACY[AssessmentStatus(status)]
    except (KeyError, ValueError) as exc:
        raise StatusMappingError(f"No legacy status for '{_raw(status)}'") from exc


def to_storage_status(status: LegacyStatus | str) -> AssessmentStatus:
    """Map a legacy status to the storage vocabulary, failing on unmapped values."""
    try:
        return _LEGACY_TO_STORAGE[LegacyStatus(status)]
    except (KeyError, ValueError) as exc:
        raise StatusMappingError(f"No storage status for '{_raw(status)}'") from exc


def read_status(value: Any) -> AssessmentStatus:
    """Interpret a stored status written in either vocabulary."""
    if value is None or value == "":
        return INITIAL_STATUS
    try:
        return AssessmentStatus(value)
    except ValueError:
        return to_storage_status(value)


def _raw(status: Any) -> str:
    return status.value if isinstance(status, (AssessmentStatus, LegacyStatus)) else str(status)


# --------------------------------------------------------------------------- extraction


def _field(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def _extract_score_field(record: Any, key: str) -> float:
    # flat legacy field, then the scores map, then zero
    flat = _field(record, key)
    if flat is not None:
        return flat
    scores = _field(record, "scores")
    if not isinstance(scores, Mapping):
        return 0
    nested = scores.get(key)
    if nested is not None:
        return nested
    return 0


def extract_progress(record: Any) -> float:
    return _extract_score_field(record, "progress")


def extract_score(record: Any) -> float:
    return _extract_score_field(record, "score")


def _config_field(record: Any, key: str) -> Any:
    config = _field(record, "config")
    if config is None:
        return None
    if isinstance(config, Mapping):
        return config.get(key)
    return getattr(config, key, None)


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def extract_frameworks(record: Any) -> list[str]:
    value = _config_field(record, "frameworks")
    if value is None:
        value = _field(record, "frameworks")
    return _as_list(value)


def extract_regions(record: Any) -> list[str]:
    value = _config_field(record, "regions")
    if value is None:
        value = _field(record, "regions")
    return _as_list(value)


# --------------------------------------------------------------------------- read side


def _stored_config(stored: Mapping[str, Any]) -> AssessmentConfig:
    raw = stored.get("config")
    if isinstance(raw, Mapping):
        data = dict(raw)
        data.setdefault("domain", stored.get("domain") or "")
        data.setdefault("name", stored.get("name") or "")
    else:
        data = {"domain": stored.get("domain") or "", "name": stored.get("name") or ""}
    data["frameworks"] = tuple(extract_frameworks(stored))
    data["regions"] = tuple(extract_regions(stored))
    if data.get("team") is not None:
        data["team"] = tuple(_as_list(data["team"]))
    scope = data.get("scope")
    if isinstance(scope, Mapping):
        data["scope"] = {
            "systems": tuple(_as_list(scope.get("systems"))),
            "locations": tuple(_as_list(scope.get("locations"))),
        }
    try:
        return AssessmentConfig.model_validate(data)
    except PydanticValidationError:
        # stored history may predate validation rules; read it as-is
        return AssessmentConfig.model_construct(**data)


def record_from_stored(stored: Mapping[str, Any]) -> AssessmentRecord:
    """Normalize a stored assessment of any vintage into the canonical record."""
    progress = extract_progress(stored)
    score = extract_score(stored)
    raw_scores = stored.get("scores")
    # anything other than a JSON object reads as "no scores yet"
    scores = dict(raw_scores) if isinstance(raw_scores, Mapping) else {}
    scores["progress"] = progress
    scores["score"] = score

    now = utc_now_iso()
    created_at = stored.get("createdAt") or stored.get("lastUpdated") or now
    updated_at = stored.get("updatedAt") or stored.get("lastUpdated") or created_at
    config = _stored_config(stored)

    return AssessmentRecord(
        id=stored["id"],
        config=config,
        domain=stored.get("domain") or config.domain,
        name=stored.get("name") or config.name,
        status=read_status(stored.get("status")),
        scores=scores,
        created_at=created_at,
        updated_at=updated_at,
        user_id=stored.get("userId") or "",
        progress=progress,
        score=score,
        last_updated=updated_at,
        frameworks=list(config.frameworks),
        regions=list(config.regions),
    )


# --------------------------------------------------------------------------- write side


def validate_config(config: AssessmentConfig | Mapping[str, Any]) -> AssessmentConfig:
    if isinstance(config, AssessmentConfig):
        return config
    try:
        return AssessmentConfig.model_validate(dict(config))
    except PydanticValidationError as exc:
        raise ValidationError(describe_validation_error(exc)) from exc


def new_stored_assessment(
    *, assessment_id: str, config: AssessmentConfig, user_id: str, now: str
) -> dict[str, Any]:
    """Canonical stored layout for a freshly created assessment."""
    return {
        "id": assessment_id,
        "name": config.name,
        "domain": config.domain,
        "status": INITIAL_STATUS.value,
        "config": config.to_storage(),
        "scores": {"progress": 0, "score": 0},
        "createdAt": now,
        "updatedAt": now,
        "userId": user_id,
    }


def _writable_status(value: Any) -> str:
    try:
        status = AssessmentStatus(_raw(value))
    except ValueError as exc:
        raise StatusMappingError(f"Unknown assessment status '{_raw(value)}'") from exc
    if status is AssessmentStatus.NOT_STARTED:
        raise ValidationError("Status 'notStarted' is read-only and cannot be written")
    return status.value


def _check_number(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"'{key}' must be numeric")
    if key == "progress" and not 0 <= value <= 100:
        raise ValidationError("'progress' must be between 0 and 100")


def merge_update(
    stored: Mapping[str, Any], updates: Mapping[str, Any], *, now: str
) -> dict[str, Any]:
    """Merge a partial update into a stored record and canonicalize the result.

    Flat legacy fields are folded into ``config``/``scores`` before merging so
    the value written here is the one every later read extracts.
    """
    for key in _IMMUTABLE_KEYS:
        if key in updates and updates[key] != stored.get(key):
            raise ValidationError(f"'{key}' cannot be changed")
    unknown = set(updates) - _UPDATABLE_KEYS - set(_IMMUTABLE_KEYS) - set(_IGNORED_KEYS)
    if unknown:
        raise ValidationError(f"Unsupported update field(s): {', '.join(sorted(unknown))}")

    current = record_from_stored(stored)
    config = current.config

    if "config" in updates and updates["config"] is not None:
        config = validate_config(updates["config"])
    changes: dict[str, Any] = {}
    for key in ("name", "frameworks", "regions"):
        if updates.get(key) is not None:
            changes[key] = updates[key]
    if changes:
        config = validate_config({**config.to_storage(), **changes})
    domain = updates.get("domain") or config.domain
    if domain != current.domain or config.domain != current.domain:
        raise ValidationError("The domain of an existing assessment cannot be changed")

    scores = dict(current.scores)
    new_scores = updates.get("scores")
    if new_scores is not None:
        if not isinstance(new_scores, Mapping):
            raise ValidationError("'scores' must be a mapping")
        scores.update(new_scores)
    for key in _FLAT_SCORE_KEYS:
        if updates.get(key) is not None:
            scores[key] = updates[key]
    for key in _FLAT_SCORE_KEYS:
        _check_number(key, scores[key])

    status = current.status.value
    if updates.get("status") is not None:
        status = _writable_status(updates["status"])

    merged = {key: value for key, value in stored.items() if key not in _FLAT_LEGACY_KEYS}
    merged.update(
        {
            "name": config.name,
            "domain": current.domain,
            "status": status,
            "config": config.to_storage(),
            "scores": scores,
            "createdAt": current.created_at,
            "updatedAt": now,
        }
    )
    return merged


# --------------------------------------------------------------------------- legacy (façade only)


def record_to_legacy(record: AssessmentRecord) -> LegacyAssessment:
    return LegacyAssessment(
        id=record.id,
        name=record.name,
        domain=record.domain,
        progress=extract_progress(record),
        score=extract_score(record),
        status=to_legacy_status(record.status),
        last_updated=record.last_updated or record.updated_at,
        user_id=record.user_id or "",
        frameworks=extract_frameworks(record),
        regions=extract_regions(record),
    )


def legacy_update_to_record_update(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a partial flat-shape update into a canonical partial update."""
    translated: dict[str, Any] = {}
    scores: dict[str, Any] = {}
    for key, value in updates.items():
        if key == "status":
            if value is not None:
                translated["status"] = to_storage_status(value).value
        elif key in _FLAT_SCORE_KEYS:
            if value is not None:
                scores[key] = value
        elif key in ("lastUpdated", "id", "userId"):
            continue
        else:
            translated[key] = value
    if scores:
        translated["scores"] = scores
    return translated

