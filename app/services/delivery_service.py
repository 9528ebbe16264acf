"""
Lead delivery: push one user's matching properties and their owners into
every configured GoHighLevel account.

Per account, contacts go first (their GoHighLevel ids are needed for the
association), then properties, each followed by its contact association.
Entity-level failures are logged and skipped; auth failures abort the job.
Local `pushed` flags only follow the primary (first) account.
"""
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from app.ghl.accounts import load_ghl_accounts
from app.ghl.client import get_ghl_client
from app.ghl.exceptions import GHLAuthError, status_of, body_of
from app.ghl.payloads import build_contact_payload, build_property_payload
from app.logging_config import get_logger, DeliveryContext
from app.services.job_service import JobService

logger = get_logger(__name__)

MAX_SAFE_INTEGER = 2 ** 53 - 1
PROGRESS_EVERY = 10


class DeliveryError(Exception):
    """Job-level failure, e.g. the user or their settings are missing."""


@dataclass
class AccountResult:
    account: str
    contacts: int = 0
    contacts_created: int = 0
    contacts_found: int = 0
    contacts_failed: int = 0
    contacts_skipped: int = 0
    properties: int = 0
    properties_existing: int = 0
    properties_failed: int = 0
    properties_skipped: int = 0
    properties_without_id: int = 0
    associations: int = 0
    # local contact id -> GoHighLevel contact id, for this account only
    contact_ids: dict = field(default_factory=dict, repr=False)

    def to_dict(self):
        return {
            "contacts": self.contacts,
            "contactsCreated": self.contacts_created,
            "contactsFound": self.contacts_found,
            "contactsFailed": self.contacts_failed,
            "contactsSkipped": self.contacts_skipped,
            "properties": self.properties,
            "propertiesExisting": self.properties_existing,
            "propertiesFailed": self.properties_failed,
            "propertiesSkipped": self.properties_skipped,
            "propertiesWithoutId": self.properties_without_id,
            "associations": self.associations,
        }


def _error_context(error):
    return {"error": str(error), "status": status_of(error), "response": body_of(error)}


class DeliveryService:
    """Runs one delivery job against an ordered list of destination accounts."""

    def __init__(self, accounts=None, client_factory=None, progress_every=PROGRESS_EVERY):
        self._accounts = accounts
        self.client_factory = client_factory or get_ghl_client
        self.progress_every = progress_every

    @property
    def accounts(self):
        if self._accounts is None:
            self._accounts = load_ghl_accounts()
        return self._accounts

    # -------------------------
    # Selection
    # -------------------------
    @staticmethod
    def load_settings(user_id):
        from app.models import User, db

        user = db.session.get(User, user_id)
        if user is None or user.settings is None:
            raise DeliveryError(f"Missing user or user settings for user {user_id}")
        return user.settings

    @staticmethod
    def matching_filters(settings):
        """
        SQL filters for a user's unpushed matches, or None when the ZIP list is empty.

        Open price bounds default to 0 and MAX_SAFE_INTEGER.
        """
        from app.models import Property

        zip_codes = [str(z).strip() for z in (settings.zip_codes or []) if str(z).strip()]
        if not zip_codes:
            return None

        price_min = settings.price_min if settings.price_min is not None else 0
        price_max = settings.price_max if settings.price_max is not None else MAX_SAFE_INTEGER
        return (
            Property.price >= price_min,
            Property.price <= price_max,
            Property.postal_code.in_(zip_codes),
            Property.pushed.is_(False),
        )

    @staticmethod
    def matching_property_ids(settings):
        """Ids of a user's unpushed matches, ascending."""
        from app.models import Property, db

        filters = DeliveryService.matching_filters(settings)
        if filters is None:
            return []
        rows = db.session.query(Property.id).filter(*filters).order_by(Property.id.asc()).all()
        return [row[0] for row in rows]

    @staticmethod
    def select_properties(settings, payload=None):
        """
        Unpushed properties inside the user's price range and ZIP list, with owners loaded.

        Batched jobs carry firstPropertyId/lastPropertyId bounds. Older batch
        payloads without bounds fall back to an id-ordered slice.
        """
        from app.models import Property

        payload = payload or {}
        filters = DeliveryService.matching_filters(settings)
        if filters is None:
            return []

        query = (Property.query
                 .options(joinedload(Property.owner))
                 .filter(*filters)
                 .order_by(Property.id.asc()))

        first_id = payload.get("firstPropertyId")
        last_id = payload.get("lastPropertyId")
        if first_id is not None and last_id is not None:
            query = query.filter(Property.id >= first_id, Property.id <= last_id)
        elif payload.get("batchSize") and payload.get("batchIndex") is not None:
            batch_size = int(payload["batchSize"])
            query = query.offset(int(payload["batchIndex"]) * batch_size).limit(batch_size)

        return query.all()

    @staticmethod
    def contacts_to_push(properties):
        """Distinct unpushed owners of the selected properties, in first-seen order."""
        contacts = {}
        for prop in properties:
            owner = prop.owner
            if prop.owner_id and owner is not None and not owner.pushed and prop.owner_id not in contacts:
                contacts[prop.owner_id] = owner
        return contacts

    @staticmethod
    def pushed_owners(properties):
        """Owners of selected properties that an earlier run already pushed."""
        owners = {}
        for prop in properties:
            owner = prop.owner
            if prop.owner_id and owner is not None and owner.pushed and prop.owner_id not in owners:
                owners[prop.owner_id] = owner
        return owners

    # -------------------------
    # Local persistence
    # -------------------------
    @staticmethod
    def _save(log, what, **context):
        from app.models import db

        try:
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            log.error(f"Failed to save {what}", error=str(e), **context)
            return False

    def _backfill_contact(self, log, contact, ghl_contact_id):
        if contact.ghl_contact_id == ghl_contact_id and contact.pushed:
            return
        contact.ghl_contact_id = ghl_contact_id
        contact.pushed = True
        self._save(log, "contact GoHighLevel id", contact_id=contact.id, ghl_contact_id=ghl_contact_id)

    def _mark_property_pushed(self, log, prop, ghl_property_id):
        prop.ghl_property_id = ghl_property_id
        prop.pushed = True
        return self._save(log, "property GoHighLevel id", property_id=prop.id,
                          ghl_property_id=ghl_property_id)

    # -------------------------
    # Per-account phases
    # -------------------------
    def push_contacts(self, client, contacts, properties, result, is_primary, log):
        """Find or create each contact once. Fills result.contact_ids."""
        for contact_id, contact in contacts.items():
            if not contact.email and not contact.phone:
                log.warning("Contact has no email or phone, skipping", contact_id=contact_id)
                result.contacts_skipped += 1
                continue

            try:
                ghl_id = client.find_contact_by_email_or_phone(contact.email, contact.phone)
                if ghl_id:
                    result.contacts_found += 1
                else:
                    prop = next((p for p in properties if p.owner_id == contact_id), None)
                    if prop is None:
                        log.warning("Contact has no property in this batch, skipping", contact_id=contact_id)
                        result.contacts_skipped += 1
                        continue
                    payload = build_contact_payload(contact, prop, client.location_id)
                    ghl_id = client.create_contact(payload)
                    if not ghl_id:
                        log.warning("Created contact but response had no id", contact_id=contact_id)
                        result.contacts_failed += 1
                        continue
                    result.contacts_created += 1
                    log.info("Pushed contact", contact_id=contact_id, ghl_contact_id=ghl_id)
            except GHLAuthError:
                raise
            except Exception as e:
                log.error("Error pushing contact", contact_id=contact_id, **_error_context(e))
                result.contacts_failed += 1
                continue

            result.contact_ids[contact_id] = ghl_id
            if is_primary:
                self._backfill_contact(log, contact, ghl_id)

        result.contacts = len(result.contact_ids)

    def resolve_pushed_owners(self, client, owners, result, is_primary, log):
        """
        GoHighLevel ids for owners pushed by an earlier run. The primary
        account uses the stored id; other accounts search without creating.
        """
        for contact_id, contact in owners.items():
            if is_primary and contact.ghl_contact_id:
                result.contact_ids[contact_id] = contact.ghl_contact_id
                continue
            if not contact.email and not contact.phone:
                continue
            try:
                ghl_id = client.find_contact_by_email_or_phone(contact.email, contact.phone)
            except GHLAuthError:
                raise
            except Exception as e:
                log.error("Error resolving pushed contact", contact_id=contact_id, **_error_context(e))
                continue
            if ghl_id:
                result.contact_ids[contact_id] = ghl_id

    def push_properties(self, client, properties, result, is_primary, log, on_progress=None):
        """Find or create each property, then associate it with its owner."""
        for prop in properties:
            try:
                self._push_property(client, prop, result, is_primary, log)
            except GHLAuthError:
                raise
            except Exception as e:
                log.error("Error pushing property", property_id=prop.id, **_error_context(e))
                result.properties_failed += 1
            if on_progress:
                on_progress()

    def _push_property(self, client, prop, result, is_primary, log):
        if not prop.owner_id:
            log.warning("Property has no owner, skipping", property_id=prop.id)
            result.properties_skipped += 1
            return

        ghl_contact_id = result.contact_ids.get(prop.owner_id)
        if not ghl_contact_id:
            log.warning("Property owner was not pushed, skipping property",
                        property_id=prop.id, owner_id=prop.owner_id)
            result.properties_skipped += 1
            return

        contact_name = prop.owner.display_name if prop.owner is not None else None

        existing_id = client.find_property_by_address(prop.address_full)
        if existing_id:
            result.properties_existing += 1
            if is_primary and not prop.pushed:
                self._mark_property_pushed(log, prop, existing_id)
            if client.ensure_association(ghl_contact_id, existing_id, contact_name=contact_name):
                result.associations += 1
            return

        payload = build_property_payload(prop, client.location_id)
        log.debug("Prepared property payload", property_id=prop.id, payload=payload)
        ghl_property_id = client.create_property(payload)
        result.properties += 1

        if not ghl_property_id:
            result.properties_without_id += 1
            log.warning("Skipping association, property id unknown", property_id=prop.id)
            return

        log.info("Pushed property", property_id=prop.id, ghl_property_id=ghl_property_id)
        if is_primary:
            self._mark_property_pushed(log, prop, ghl_property_id)

        if client.ensure_association(ghl_contact_id, ghl_property_id, contact_name=contact_name):
            result.associations += 1

    # -------------------------
    # Job entrypoint
    # -------------------------
    def deliver(self, job_id, user_id, payload=None):
        """
        Deliver one user's leads.

        Returns:
            dict: per-account counts keyed by account name

        Raises:
            DeliveryError: If the user or their settings are missing
            GHLAuthError: If any account rejects its credentials
        """
        with DeliveryContext(job_id, user_id) as ctx:
            log = ctx.logger
            log.debug("Job payload", payload=payload)

            settings = self.load_settings(user_id)
            properties = self.select_properties(settings, payload)
            if not properties:
                log.info("Nothing to push")
                JobService.update_progress(job_id, 0, 0, "completed")
                return {}

            contacts = self.contacts_to_push(properties)
            pushed_owners = self.pushed_owners(properties)
            log.info("Selected leads", properties=len(properties), contacts=len(contacts),
                     previously_pushed_owners=len(pushed_owners))

            accounts = self.accounts
            total = len(properties) * len(accounts)
            processed = 0
            JobService.update_progress(job_id, processed, total, "pushing contacts")

            results = []
            for index, account in enumerate(accounts):
                is_primary = index == 0
                client = self.client_factory(account)
                result = AccountResult(account=account.name)
                results.append(result)
                account_log = log.bind(account=account.name, primary=is_primary)
                account_log.info("Pushing to account")

                JobService.update_progress(job_id, processed, total, f"pushing contacts ({account.name})")
                self.push_contacts(client, contacts, properties, result, is_primary, account_log)
                self.resolve_pushed_owners(client, pushed_owners, result, is_primary, account_log)

                JobService.update_progress(job_id, processed, total, f"pushing properties ({account.name})")

                def on_progress():
                    nonlocal processed
                    processed += 1
                    if processed % self.progress_every == 0:
                        JobService.update_progress(job_id, processed, total,
                                                   f"pushing properties ({account.name})")

                self.push_properties(client, properties, result, is_primary, account_log,
                                     on_progress=on_progress)

                account_log.info("Account complete", **result.to_dict())

            JobService.update_progress(job_id, total, total, "completed")
            summary = {r.account: r.to_dict() for r in results}
            log.info("Delivery summary", accounts=summary)
            return summary
