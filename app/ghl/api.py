import threading
import time
from typing import Optional, Dict, List
from urllib.parse import quote

import requests
from requests.exceptions import ConnectionError, Timeout, RequestException
from urllib3.exceptions import ProtocolError

from app.config import Config as cfg
from app.ghl.exceptions import GHLAuthError, status_of, body_of
from app.ghl.rate_limiter import get_rate_limiter
from app.logging_config import get_logger

logger = get_logger(__name__)

CONTACT_OBJECT_KEY = "contact"

# Record-creation responses come back in several shapes. Paths are tried in order.
ID_EXTRACTORS = (
    ("flat id", ("id",)),
    ("nested under data", ("data", "id")),
    ("nested under record", ("record", "id")),
    ("nested under data.record", ("data", "record", "id")),
    ("nested under contact", ("contact", "id")),
)

CONTACT_ID_EXTRACTORS = (
    ("nested under contact", ("contact", "id")),
    ("flat id", ("id",)),
)


def extract_id(body, extractors=ID_EXTRACTORS):
    """First id found along the given paths, or None."""
    for _label, path in extractors:
        node = body
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if node:
            return str(node)
    return None


_association_cache = {}
_association_cache_lock = threading.Lock()


def clear_association_cache():
    with _association_cache_lock:
        _association_cache.clear()


class GHLAPI:
    """GoHighLevel connection layer for one sub-account. Each thread gets its own requests session."""

    def __init__(self, account, base_url=None, api_version=None, custom_object_key=None,
                 timeout=None, rate_limiter=None, session=None):
        if not account or not account.location_id or not account.private_token:
            raise ValueError("Missing GoHighLevel account configuration")

        self.account = account
        self.base_url = (base_url or cfg.GHL_BASE_URL).rstrip("/")
        self.api_version = api_version or cfg.GHL_API_VERSION
        self.custom_object_key = custom_object_key or cfg.GHL_CUSTOM_OBJECT_KEY
        self.timeout = timeout or cfg.GHL_REQUEST_TIMEOUT
        self.rate_limiter = rate_limiter or get_rate_limiter(account.location_id)

        self.headers = {
            "Authorization": f"Bearer {account.private_token}",
            "Version": self.api_version,
            "Accept": "application/json",
        }
        self._session = session
        self._local = threading.local()
        if session is not None:
            session.headers.update(self.headers)

        self.log = logger.bind(account=account.name)

    @property
    def location_id(self):
        return self.account.location_id

    @property
    def session(self):
        """The injected session, or this thread's own session."""
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.headers)
            self._local.session = session
        return session

    def _send(self, method, url, **kwargs):
        r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if r.status_code in (401, 403):
            raise GHLAuthError(
                f"{r.status_code} from GoHighLevel ({self.account.name}): {r.text}",
                response=r
            )
        r.raise_for_status()
        return r

    def _request(self, method: str, endpoint: str, max_retries: int = 3, retry_delay: float = 1.0, **kwargs):
        """
        Make a rate-limited request with retry logic for connection errors.

        Args:
            method: HTTP method
            endpoint: API endpoint
            max_retries: Maximum number of attempts for connection errors
            retry_delay: Initial delay between retries (exponential backoff)
            **kwargs: Additional arguments for requests

        Raises:
            GHLAuthError: On 401/403
            requests.HTTPError: On any other 4xx/5xx
        """
        url = f"{self.base_url}{endpoint}"

        for attempt in range(max_retries):
            try:
                r = self.rate_limiter.schedule(self._send, method, url, **kwargs)
                if not r.text:
                    return None
                try:
                    return r.json()
                except ValueError:
                    return None
            except (ConnectionError, ProtocolError, Timeout) as e:
                if attempt < max_retries - 1:
                    wait_time = retry_delay * (2 ** attempt)
                    self.log.warning("Connection error, retrying", endpoint=endpoint,
                                     attempt=attempt + 1, wait_seconds=wait_time, error=str(e))
                    time.sleep(wait_time)
                    continue
                raise requests.ConnectionError(
                    f"Connection error after {max_retries} attempts: {str(e)}"
                ) from e
        return None

    def _get(self, endpoint: str, params: Optional[Dict] = None):
        return self._request("GET", endpoint, params=params)

    def _post(self, endpoint: str, data: Dict, max_retries: int = 3):
        return self._request("POST", endpoint, max_retries=max_retries, json=data)

    # -------------------------
    # Contacts
    # -------------------------
    def _search_duplicate_contact(self, label, params):
        try:
            body = self._get("/contacts/search/duplicate", params={"locationId": self.location_id, **params})
        except GHLAuthError:
            raise
        except RequestException as e:
            status = status_of(e)
            if status == 404:
                self.log.debug("No contact found", search=label)
            elif status == 422:
                self.log.warning("Contact search validation error", search=label, response=body_of(e))
            else:
                self.log.error("Contact search failed", search=label, status=status,
                               response=body_of(e), error=str(e))
            return None

        contact = body.get("contact") if isinstance(body, dict) else None
        contact = contact or body
        if isinstance(contact, dict) and contact.get("id"):
            self.log.info("Found existing contact", search=label, ghl_contact_id=contact["id"])
            return str(contact["id"])
        return None

    def find_contact_by_email_or_phone(self, email, phone) -> Optional[str]:
        """
        Look up an existing contact, by email first and then by phone.

        404 and other non-auth failures count as "not found".

        Raises:
            GHLAuthError: On 401/403
        """
        if not email and not phone:
            self.log.warning("No email or phone provided for contact search")
            return None

        if email:
            found = self._search_duplicate_contact("email", {"email": email})
            if found:
                return found
        if phone:
            # The duplicate search takes the phone as `number`
            found = self._search_duplicate_contact("phone", {"number": phone})
            if found:
                return found

        self.log.info("Contact not found in GoHighLevel", email=email, phone=phone)
        return None

    def create_contact(self, payload: Dict) -> Optional[str]:
        body = self._post("/contacts/", payload, max_retries=1)
        return extract_id(body, CONTACT_ID_EXTRACTORS)

    # -------------------------
    # Custom-object property records
    # -------------------------
    def find_property_by_address(self, address) -> Optional[str]:
        """
        Search the property custom object for a record matching `address`.

        Raises:
            GHLAuthError: On 401/403
        """
        if not address:
            self.log.debug("No address provided for property search")
            return None

        try:
            body = self._post(f"/objects/{self.custom_object_key}/records/search", {
                "locationId": self.location_id,
                "page": 1,
                "pageLimit": 1,
                "query": address,
            })
        except GHLAuthError:
            raise
        except RequestException as e:
            status = status_of(e)
            if status == 404:
                self.log.debug("No property found", address=address)
            elif status in (400, 422):
                self.log.warning("Property search rejected", status=status,
                                 response=body_of(e), address=address)
            else:
                self.log.error("Property search failed", status=status,
                               response=body_of(e), error=str(e), address=address)
            return None

        records = body.get("records") if isinstance(body, dict) else None
        if records and isinstance(records[0], dict) and records[0].get("id"):
            self.log.info("Found existing property", ghl_property_id=records[0]["id"])
            return str(records[0]["id"])
        return None

    def create_property(self, payload: Dict) -> Optional[str]:
        """Create a property record. Returns None when the response carries no id."""
        body = self._post(f"/objects/{self.custom_object_key}/records", payload, max_retries=1)
        ghl_id = extract_id(body)
        if not ghl_id:
            self.log.warning("Created property but could not find GoHighLevel id in response",
                             response=body)
        return ghl_id

    # -------------------------
    # Associations
    # -------------------------
    def list_associations(self, object_key: str) -> List[Dict]:
        body = self._get(f"/associations/objectKey/{quote(object_key, safe='')}",
                         params={"locationId": self.location_id})
        if isinstance(body, list):
            return body
        if isinstance(body, dict) and isinstance(body.get("associations"), list):
            return body["associations"]
        self.log.warning("Unexpected associations response shape", response=body)
        return []

    def get_association_id(self, first_key: str, second_key: str) -> Optional[str]:
        """
        Association-definition id for an unordered pair of object keys.

        Definitions are static per account, so found ids are cached for the
        life of the process. Misses are not cached.
        """
        cache_key = (self.location_id, frozenset((first_key, second_key)))
        with _association_cache_lock:
            cached = _association_cache.get(cache_key)
        if cached:
            return cached

        try:
            definitions = self.list_associations(first_key)
        except GHLAuthError:
            raise
        except RequestException as e:
            self.log.error("Error fetching associations", status=status_of(e), error=str(e))
            return None

        wanted = {first_key, second_key}
        for definition in definitions:
            if not isinstance(definition, dict):
                continue
            pair = {definition.get("firstObjectKey"), definition.get("secondObjectKey")}
            if pair == wanted:
                assoc_id = definition.get("id") or definition.get("_id") or definition.get("associationId")
                if assoc_id:
                    with _association_cache_lock:
                        _association_cache[cache_key] = str(assoc_id)
                    return str(assoc_id)
        return None

    def create_relation(self, association_id, first_record_id, second_record_id) -> Dict:
        """Create a record relation. A 400 'duplicate' means it already exists and counts as success."""
        if not association_id or not first_record_id or not second_record_id:
            return {"success": False, "error": "missing associationId or record ids"}

        try:
            data = self._post("/associations/relations", {
                "locationId": self.location_id,
                "associationId": association_id,
                "firstRecordId": first_record_id,
                "secondRecordId": second_record_id,
            }, max_retries=1)
        except GHLAuthError:
            raise
        except RequestException as e:
            body = body_of(e)
            message = ""
            if isinstance(body, dict):
                message = str(body.get("message") or body.get("error") or "")
            elif body:
                message = str(body)
            if status_of(e) == 400 and "duplicate" in message.lower():
                return {"success": True, "data": body, "already_exists": True}
            return {"success": False, "error": body or str(e)}
        return {"success": True, "data": data}

    def ensure_association(self, contact_id, property_id, contact_name=None) -> bool:
        """
        Relate a contact to a property record. Never raises except on auth failures.

        Returns:
            bool: True when the relation exists afterwards
        """
        if not contact_id or not property_id:
            self.log.warning("Skipping association, missing GoHighLevel ids",
                             ghl_contact_id=contact_id, ghl_property_id=property_id)
            return False

        assoc_id = self.get_association_id(CONTACT_OBJECT_KEY, self.custom_object_key)
        if not assoc_id:
            self.log.error("No association definition found",
                           first_key=CONTACT_OBJECT_KEY, second_key=self.custom_object_key)
            return False

        result = self.create_relation(assoc_id, contact_id, property_id)
        if result["success"]:
            self.log.info("Associated contact with property", contact_name=contact_name,
                          ghl_contact_id=contact_id, ghl_property_id=property_id,
                          already_exists=result.get("already_exists", False))
            return True

        self.log.error("Could not create relation", error=result.get("error"),
                       contact_name=contact_name, ghl_contact_id=contact_id,
                       ghl_property_id=property_id)
        return False
