"""orjson utils."""

from typing import Any

import orjson

from starlette_oauth_server.utils.logging import get_logger

logger = get_logger(__name__)


def safe_json_loads(data: Any) -> dict:
    """Decode a JSON object, returning an empty dict for anything else."""
    if not data:
        return {}
    try:
        decoded = orjson.loads(data)
    except orjson.JSONDecodeError as ex:
        logger.warning("Failed to load JSON", error=str(ex))
        return {}
    return decoded if isinstance(decoded, dict) else {}


def json_dumps(data: Any) -> bytes:
    """Encode ``data`` as compact JSON bytes."""
    return orjson.dumps(data)
