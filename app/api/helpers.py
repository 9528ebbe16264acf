"""
Helper functions for validating inbound webhook requests.
"""
import hmac
from typing import Dict, Any, Tuple, Optional

from app.datetime_utils import parse_iso_datetime


class PayloadError(ValueError):
    """Webhook body failed validation."""


def secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison. An unset expected secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(str(provided), str(expected))


def validate_ingest_payload(body: Any) -> Tuple[str, str]:
    """
    Validate an ingest-complete body.

    Args:
        body: Parsed JSON, expected {"runId": str|int, "ingestedAt": ISO datetime}

    Returns:
        tuple: (run_id as str, ingested_at as sent)

    Raises:
        PayloadError: If a field is missing or malformed
    """
    if not isinstance(body, dict):
        raise PayloadError("Request body must be a JSON object")

    run_id = body.get("runId")
    if isinstance(run_id, bool) or not isinstance(run_id, (str, int)) or str(run_id).strip() == "":
        raise PayloadError("runId must be a non-empty string or number")

    ingested_at = body.get("ingestedAt")
    if not isinstance(ingested_at, str):
        raise PayloadError("ingestedAt must be an ISO datetime string")
    try:
        parse_iso_datetime(ingested_at)
    except ValueError as e:
        raise PayloadError(f"ingestedAt is not a valid datetime: {e}") from e

    return str(run_id), ingested_at


def job_summary(job) -> Dict[str, Any]:
    """Job dict for the dashboard, with progress lifted out of the payload."""
    data = job.to_dict()
    data["progress"] = (job.payload or {}).get("progress")
    return data
