"""
Shared fixtures: a Flask app on in-memory SQLite and row factories.
"""
import pytest

from app import create_app
from app.ghl.accounts import GHLAccount
from app.ghl.api import clear_association_cache
from app.ghl.client import reset_ghl_clients
from app.ghl.rate_limiter import reset_rate_limiters
from app.models import Contact, Property, User, UserSettings, db
from app.services import queue_service

WEBHOOK_SECRET = "test-hook-secret"


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app({
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "TESTING": True,
        "WEBHOOK_SECRET": WEBHOOK_SECRET,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Process-wide caches must not leak between tests."""
    queue_service._queue = None
    reset_ghl_clients()
    reset_rate_limiters()
    clear_association_cache()
    yield
    queue_service._queue = None


@pytest.fixture
def primary_account():
    return GHLAccount(name="Primary", location_id="loc-primary", private_token="token-primary")


@pytest.fixture
def secondary_account():
    return GHLAccount(name="Secondary", location_id="loc-secondary", private_token="token-secondary")


@pytest.fixture
def make_user(app):
    """Create a user, with settings unless zip_codes is None."""
    counter = {"n": 0}

    def _make_user(user_id=None, zip_codes=("80202",), price_min=None, price_max=None):
        counter["n"] += 1
        user = User(
            id=user_id or f"user-{counter['n']}",
            gh_user_id=f"gh-{counter['n']}",
            name=f"User {counter['n']}",
        )
        db.session.add(user)
        if zip_codes is not None:
            db.session.add(UserSettings(
                user_id=user.id,
                zip_codes=list(zip_codes),
                radius_miles=0,
                price_min=price_min,
                price_max=price_max,
            ))
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_contact(app):
    counter = {"n": 0}

    def _make_contact(**fields):
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "contact_id": f"src-contact-{n}",
            "first_name": "Pat",
            "last_name": f"Owner{n}",
            "email": f"owner{n}@example.com",
            "phone": f"+1303555{n:04d}",
        }
        defaults.update(fields)
        contact = Contact(**defaults)
        db.session.add(contact)
        db.session.commit()
        return contact

    return _make_contact


@pytest.fixture
def make_property(app):
    counter = {"n": 0}

    def _make_property(owner=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "owner_id": owner.id if owner is not None else None,
            "address_full": f"{100 + n} Main St, Denver, CO 80202",
            "street_address": f"{100 + n} Main St",
            "city": "Denver",
            "state": "CO",
            "postal_code": "80202",
            "country": "USA",
            "price": 400000,
            "bedrooms": "3",
            "bathrooms": "2",
        }
        defaults.update(fields)
        prop = Property(**defaults)
        db.session.add(prop)
        db.session.commit()
        return prop

    return _make_property
