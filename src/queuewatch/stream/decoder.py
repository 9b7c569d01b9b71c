"""
Occupancy Decoder
=================

Extracts a person count from the occupancy API payload.

Accepted shapes:
    {"message": {"results": [camera, ...]}}   (the documented shape)
    [camera, ...]                             (bare list)
    camera                                    (single object)

Camera lookup:
    match on ``camera_id`` / ``cameraId`` (envelope) or ``id`` / ``cameraId``
    (bare list); otherwise fall back to the first record with a warning.

Count lookup:
    first present integer-like field of COUNT_FIELDS, then the same search
    inside ``data`` and ``latestData``.
"""

import logging
import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from queuewatch.errors import SourceDecodeError


logger = logging.getLogger(__name__)

COUNT_FIELDS = ("counter", "count", "people", "persons", "occupancy", "number")
NESTED_FIELDS = ("data", "latestData")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class ResultsMessage(BaseModel):
    """``message`` part of the API envelope."""

    model_config = ConfigDict(extra="allow")

    results: List[Dict[str, Any]] = Field(default_factory=list)


class OccupancyEnvelope(BaseModel):
    """Top-level API response."""

    model_config = ConfigDict(extra="allow")

    success: Optional[bool] = None
    message: Optional[ResultsMessage] = None


def _parse_count(value: Any) -> Optional[int]:
    """Integer value of a count field, or None when it is not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def extract_count(record: Dict[str, Any]) -> Optional[int]:
    """Search one camera record for a count."""
    for name in COUNT_FIELDS:
        if record.get(name) is None:
            continue
        count = _parse_count(record[name])
        if count is not None:
            return count

    for name in NESTED_FIELDS:
        nested = record.get(name)
        if isinstance(nested, dict):
            count = extract_count(nested)
            if count is not None:
                return count

    return None


def _select(records: List[Dict[str, Any]], camera_id: str, id_keys: tuple) -> Optional[Dict[str, Any]]:
    for record in records:
        if isinstance(record, dict) and any(record.get(k) == camera_id for k in id_keys):
            return record
    if records:
        logger.warning(f"Camera {camera_id} not in response; using first record")
        first = records[0]
        return first if isinstance(first, dict) else None
    return None


def decode_occupancy(payload: Any, camera_id: str) -> int:
    """
    Decode the person count for ``camera_id`` from an API payload.

    Args:
        payload: Parsed JSON body
        camera_id: Camera record to read

    Returns:
        Raw count (may be negative; the sample validator decides)

    Raises:
        SourceDecodeError: If no record or no count field could be found.
    """
    record: Optional[Dict[str, Any]] = None

    if isinstance(payload, list):
        record = _select(payload, camera_id, ("id", "cameraId"))
    elif isinstance(payload, dict):
        try:
            envelope = OccupancyEnvelope.model_validate(payload)
        except ValidationError as e:
            raise SourceDecodeError(f"Malformed occupancy envelope: {e}") from e

        if envelope.message is not None and "results" in payload["message"]:
            record = _select(envelope.message.results, camera_id, ("camera_id", "cameraId"))
        else:
            record = payload
    else:
        raise SourceDecodeError(f"Unexpected payload type: {type(payload).__name__}")

    if record is None:
        raise SourceDecodeError("Occupancy payload contains no camera records")

    count = extract_count(record)
    if count is None:
        raise SourceDecodeError(f"No count field found for camera {camera_id}")
    return count
