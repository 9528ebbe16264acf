import json
from dataclasses import dataclass

from app.config import Config as cfg
from app.ghl.exceptions import GHLConfigError


@dataclass(frozen=True)
class GHLAccount:
    """One destination sub-account. The first configured account is the primary."""
    name: str
    location_id: str
    private_token: str

    def __repr__(self):
        # Keep tokens out of logs
        return f"GHLAccount(name={self.name!r}, location_id={self.location_id!r})"


def parse_accounts(raw):
    """Parse the GHL_ACCOUNTS JSON array into GHLAccount values."""
    try:
        entries = json.loads(raw)
    except ValueError as e:
        raise GHLConfigError(f"GHL_ACCOUNTS is not valid JSON: {e}") from e
    if not isinstance(entries, list) or not entries:
        raise GHLConfigError("GHL_ACCOUNTS must be a non-empty JSON array")

    accounts = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise GHLConfigError(f"GHL_ACCOUNTS[{i}] must be an object")
        location_id = entry.get("locationId") or entry.get("location_id")
        token = entry.get("privateToken") or entry.get("private_token")
        if not location_id or not token:
            raise GHLConfigError(f"GHL_ACCOUNTS[{i}] needs locationId and privateToken")
        accounts.append(GHLAccount(
            name=entry.get("name") or f"Account {i + 1}",
            location_id=location_id,
            private_token=token,
        ))
    return accounts


def load_ghl_accounts(config=None):
    """Ordered destination accounts from configuration.

    Uses GHL_ACCOUNTS when set, otherwise the single
    GHL_LOCATION_ID/GHL_PRIVATE_TOKEN pair.

    Raises:
        GHLConfigError: If no account is configured
    """
    config = config or cfg
    raw = getattr(config, "GHL_ACCOUNTS", None)
    if raw:
        return parse_accounts(raw)

    location_id = getattr(config, "GHL_LOCATION_ID", None)
    token = getattr(config, "GHL_PRIVATE_TOKEN", None)
    if not location_id or not token:
        raise GHLConfigError("Set GHL_ACCOUNTS or GHL_LOCATION_ID and GHL_PRIVATE_TOKEN")
    return [GHLAccount(
        name=getattr(config, "GHL_ACCOUNT_NAME", None) or "Primary",
        location_id=location_id,
        private_token=token,
    )]
