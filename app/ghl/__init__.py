# Package
from app.ghl.accounts import GHLAccount, load_ghl_accounts
from app.ghl.api import GHLAPI
from app.ghl.client import get_ghl_client
from app.ghl.exceptions import GHLError, GHLAuthError, GHLConfigError

__all__ = [
    "GHLAccount",
    "GHLAPI",
    "GHLError",
    "GHLAuthError",
    "GHLConfigError",
    "get_ghl_client",
    "load_ghl_accounts",
]
