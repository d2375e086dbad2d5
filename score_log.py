"""Local score log with optional forwarding to a remote document store.

Every finished game produces a :class:`~schemas.ScoreDocument`. Documents are
persisted in SQLite first; when ``SCORES_REMOTE_URL`` is configured they are
also posted, in typed-field document form, with retry/backoff. A forwarding
failure never reaches the session flow: the row simply stays unforwarded and
``forward_pending`` can push it later.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

import db
from schemas import ScoreDocument

LOGGER = logging.getLogger("notequest.scores")


# ---------------------------------------------------------------------------
# Typed-field document encoding
# ---------------------------------------------------------------------------


def _encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return {"timestampValue": moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, (list, tuple, set)):
        return {"arrayValue": {"values": [_encode_value(item) for item in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": to_document_fields(value)}}
    return {"stringValue": str(value)}


def _decode_value(value: Dict[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return datetime.fromisoformat(str(value["timestampValue"]).replace("Z", "+00:00"))
    if "arrayValue" in value:
        return [_decode_value(item) for item in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return from_document_fields(value["mapValue"].get("fields", {}))
    if "nullValue" in value:
        return None
    raise ValueError(f"Unsupported document value: {sorted(value)}")


def to_document_fields(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Encode a flat mapping into typed document fields."""

    return {name: _encode_value(value) for name, value in data.items()}


def from_document_fields(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {name: _decode_value(value) for name, value in fields.items()}


def to_remote_document(doc: ScoreDocument) -> Dict[str, Any]:
    return {"fields": to_document_fields(doc.model_dump(by_alias=True, exclude_none=True))}


# ---------------------------------------------------------------------------
# Forwarding
# ---------------------------------------------------------------------------


def _remote_headers() -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    token = os.getenv("SCORES_REMOTE_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def _forward_with_retry(
    score_id: int,
    document: Dict[str, Any],
    *,
    remote_url: str,
    headers: Dict[str, str],
    timeout: float = 5.0,
    max_attempts: int = 3,
    backoff: float = 0.5,
) -> bool:
    """Post a document to the remote store with exponential backoff."""

    delay = backoff
    for attempt in range(1, max_attempts + 1):
        try:
            response = await asyncio.to_thread(
                requests.post,
                remote_url,
                json=document,
                headers=headers,
                timeout=timeout,
            )
            if response.status_code < 400:
                db.mark_session_score_forwarded(score_id)
                return True
            LOGGER.warning(
                "Score store responded with status %s on attempt %s", response.status_code, attempt
            )
            if response.status_code < 500:
                return False
        except requests.RequestException as exc:
            LOGGER.warning("Failed to forward score %s (attempt %s): %s", score_id, attempt, exc)
        if attempt == max_attempts:
            break
        await asyncio.sleep(delay)
        delay *= 2
    LOGGER.error("Giving up forwarding score %s after %s attempts", score_id, max_attempts)
    return False


def _schedule_forward(score_id: int, document: Dict[str, Any], *, remote_url: str) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    coro = _forward_with_retry(score_id, document, remote_url=remote_url, headers=_remote_headers())

    if loop and loop.is_running():
        loop.create_task(coro)
    else:
        threading.Thread(target=lambda: asyncio.run(coro), daemon=True).start()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def record_score(doc: ScoreDocument) -> int:
    """Persist ``doc`` locally and schedule remote forwarding when configured."""

    score_id = db.insert_session_score(doc.as_payload(), created_at=doc.timestamp)
    LOGGER.info(
        "Logged %s score for %s on %s/%s: %s (%s stars)",
        doc.mode,
        doc.user_id,
        doc.instrument,
        doc.key,
        doc.display_score,
        doc.stars,
    )

    remote_url = os.getenv("SCORES_REMOTE_URL")
    if remote_url:
        _schedule_forward(score_id, to_remote_document(doc), remote_url=remote_url)
    return score_id


def list_scores(user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    """Return the player's logged score documents, newest first."""

    return db.list_session_scores(user_id, limit=limit)


def forward_pending(limit: int = 100, *, remote_url: Optional[str] = None) -> int:
    """Synchronously retry every score that has not reached the remote store.

    Returns the number of documents forwarded.
    """

    remote_url = remote_url or os.getenv("SCORES_REMOTE_URL")
    if not remote_url:
        return 0
    forwarded = 0
    headers = _remote_headers()
    for score_id, payload in db.list_unforwarded_session_scores(limit=limit):
        doc = ScoreDocument.model_validate(payload)
        if asyncio.run(
            _forward_with_retry(score_id, to_remote_document(doc), remote_url=remote_url, headers=headers)
        ):
            forwarded += 1
    return forwarded


__all__ = [
    "forward_pending",
    "from_document_fields",
    "list_scores",
    "record_score",
    "to_document_fields",
    "to_remote_document",
]
