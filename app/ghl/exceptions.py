import requests


class GHLError(Exception):
    """Base class for GoHighLevel client errors."""


class GHLConfigError(GHLError, ValueError):
    """Destination accounts are missing or malformed."""


class GHLAuthError(GHLError, requests.HTTPError):
    """401/403 from GoHighLevel. Aborts the whole delivery job."""


def status_of(error):
    """HTTP status attached to a requests exception, or None."""
    response = getattr(error, "response", None)
    return response.status_code if response is not None else None


def body_of(error):
    """Parsed JSON body (or raw text) of the response attached to an error."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
