from flask_sqlalchemy import SQLAlchemy
from enum import Enum

from app.datetime_utils import utcnow, format_datetime_utc

db = SQLAlchemy()


class JobStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueState:
    """States of a row in the durable queue table."""
    CREATED = "created"
    RETRY = "retry"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    CLAIMABLE = (CREATED, RETRY)
    OPEN = (CREATED, RETRY, ACTIVE)


class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.String(36), primary_key=True)
    gh_user_id = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(256), nullable=True)
    email = db.Column(db.String(256), nullable=True)

    settings = db.relationship("UserSettings", back_populates="user", uselist=False)

    def __repr__(self):
        return f"<User {self.id}>"


class UserSettings(db.Model):
    '''Per-user delivery filter'''
    __tablename__ = "user_settings"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False)
    zip_codes = db.Column(db.JSON, nullable=False, default=list)
    radius_miles = db.Column(db.Integer, nullable=False, default=0)
    price_min = db.Column(db.Integer, nullable=True)
    price_max = db.Column(db.Integer, nullable=True)
    plan_limit = db.Column(db.Integer, nullable=False, default=100)

    user = db.relationship("User", back_populates="settings")


class Contact(db.Model):
    """Property owner, ingested nightly. Only the delivery service sets ghl_contact_id/pushed."""
    __tablename__ = "contacts"
    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.String(64), unique=True, nullable=False)
    first_name = db.Column(db.Text)
    last_name = db.Column(db.Text)
    business_name = db.Column(db.Text)
    company_name = db.Column(db.Text)
    phone = db.Column(db.Text)
    email = db.Column(db.Text)
    additional_phones = db.Column(db.Text)
    additional_emails = db.Column(db.Text)
    tags = db.Column(db.Text)

    ghl_contact_id = db.Column(db.String(64), unique=True, nullable=True)
    pushed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    properties = db.relationship("Property", back_populates="owner")

    @property
    def display_name(self):
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.company_name or self.email or None

    def __repr__(self):
        return f"<Contact {self.id} - {self.display_name}>"


class Property(db.Model):
    """Real-estate listing. Descriptive columns stay free text as ingested."""
    __tablename__ = "properties"
    __table_args__ = (db.UniqueConstraint("owner_id", "address_full", name="_owner_address_uc"),)
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=True, index=True)

    # Address
    address_full = db.Column(db.Text)
    street_address = db.Column(db.Text)
    city = db.Column(db.Text)
    state = db.Column(db.Text)
    postal_code = db.Column(db.String(16), index=True)
    county = db.Column(db.Text)
    country = db.Column(db.Text)

    # Listing
    price = db.Column(db.Integer, index=True)
    asking_price = db.Column(db.Text)
    bedrooms = db.Column(db.Text)
    bathrooms = db.Column(db.Text)
    above_grade_finished_sqft = db.Column(db.Text)
    basement_sqft = db.Column(db.Text)
    basement_type = db.Column(db.Text)
    lot_size = db.Column(db.Text)
    year_built = db.Column(db.Text)
    property_type = db.Column(db.Text)
    home_condition = db.Column(db.Text)
    heating_type = db.Column(db.Text)
    cooling_type = db.Column(db.Text)
    parking_type = db.Column(db.Text)
    parking_spaces = db.Column(db.Text)
    pool = db.Column(db.Text)
    mls_number = db.Column(db.Text)
    mls_status = db.Column(db.Text)
    lead_source = db.Column(db.Text)
    tags = db.Column(db.Text)
    data = db.Column(db.Text)

    # Valuation and financing
    tax_value = db.Column(db.Text)
    automated_value = db.Column(db.Text)
    automated_value_minimum = db.Column(db.Text)
    automated_value_maximum = db.Column(db.Text)
    resale_value_arv = db.Column(db.Text)
    equity = db.Column(db.Text)  # "Equity %"
    estimated_equity = db.Column(db.Text)
    estimated_mtg_balance = db.Column(db.Text)
    estimated_mtg_payment = db.Column(db.Text)
    first_lien_amount = db.Column(db.Text)
    free_and_clear = db.Column(db.Text)
    lender_name = db.Column(db.Text)
    loan_type = db.Column(db.Text)
    loan_maturity_date = db.Column(db.Text)

    # Distress
    in_preforclosure = db.Column(db.Text)
    date_of_auction = db.Column(db.Text)
    est_opening_bid = db.Column(db.Text)
    plaintiff_name = db.Column(db.Text)
    attorney = db.Column(db.Text)
    attorney_phone_number = db.Column(db.Text)

    # Owner
    owner_address = db.Column(db.Text)
    owner_city = db.Column(db.Text)
    owner_state = db.Column(db.Text)
    owner_zip = db.Column(db.Text)
    owner_occupied = db.Column(db.Text)
    owner_status = db.Column(db.Text)
    owner_type = db.Column(db.Text)
    household_income = db.Column(db.Text)
    liquid_assets = db.Column(db.Text)
    rental_history = db.Column(db.Text)
    seller_motivation = db.Column(db.Text)
    seller_timing = db.Column(db.Text)
    working_with_realtor = db.Column(db.Text)
    realtor_name = db.Column(db.Text)

    # Secondary contact channels
    contact1_email2 = db.Column(db.Text)
    contact1_phone1_dnc = db.Column(db.Text)
    contact1_phone1_line_type = db.Column(db.Text)
    contact1_phone2 = db.Column(db.Text)
    contact1_phone2_dnc = db.Column(db.Text)
    contact1_phone2_line_type = db.Column(db.Text)
    contact1_phone3 = db.Column(db.Text)
    contact2 = db.Column(db.Text)
    contact2_email1 = db.Column(db.Text)
    contact2_email2 = db.Column(db.Text)
    contact2_phone1 = db.Column(db.Text)
    contact2_phone1_dnc = db.Column(db.Text)
    contact2_phone1_line_type = db.Column(db.Text)
    contact2_phone2 = db.Column(db.Text)
    contact2_phone2_dnc = db.Column(db.Text)
    contact2_phone2_line_type = db.Column(db.Text)
    landline1 = db.Column(db.Text)
    landline2 = db.Column(db.Text)
    landline3 = db.Column(db.Text)
    landline4 = db.Column(db.Text)
    landline5 = db.Column(db.Text)

    # Delivery state
    ghl_property_id = db.Column(db.String(64), unique=True, nullable=True)
    pushed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    owner = db.relationship("Contact", back_populates="properties")

    def __repr__(self):
        return f"<Property {self.id} - {self.address_full}>"


class Job(db.Model):
    """Local tracking row for one delivery job. Shares its id with the queue row."""
    __tablename__ = "jobs"
    id = db.Column(db.String(36), primary_key=True)
    type = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.Enum(JobStatus), nullable=False, default=JobStatus.PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=3)
    last_error = db.Column(db.Text, nullable=True)
    # Earliest time the polling worker may pick the job up again
    run_after = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    def __repr__(self):
        return f"<Job {self.id} - {self.type} - {self.status}>"

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'payload': self.payload,
            'status': self.status.value,
            'attempts': self.attempts,
            'max_attempts': self.max_attempts,
            'last_error': self.last_error,
            'created_at': format_datetime_utc(self.created_at),
            'started_at': format_datetime_utc(self.started_at),
            'finished_at': format_datetime_utc(self.finished_at),
            'updated_at': format_datetime_utc(self.updated_at),
            'user_id': self.user_id,
        }


class QueueJob(db.Model):
    """Durable queue storage. Rows survive process restarts."""
    __tablename__ = "queue_jobs"
    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(64), nullable=False, index=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    state = db.Column(db.String(16), nullable=False, default=QueueState.CREATED, index=True)

    retry_count = db.Column(db.Integer, nullable=False, default=0)
    retry_limit = db.Column(db.Integer, nullable=False, default=3)
    retry_delay = db.Column(db.Integer, nullable=False, default=60)
    retry_backoff = db.Column(db.Boolean, nullable=False, default=True)
    expire_in_seconds = db.Column(db.Integer, nullable=False, default=3600)
    singleton_key = db.Column(db.String(128), nullable=True, index=True)

    start_after = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_on = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_on = db.Column(db.DateTime, nullable=True)
    completed_on = db.Column(db.DateTime, nullable=True)
    output = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<QueueJob {self.id} - {self.name} - {self.state}>"


class WebhookLog(db.Model):
    """Audit trail of inbound webhook calls."""
    __tablename__ = "webhook_logs"
    id = db.Column(db.Integer, primary_key=True)
    direction = db.Column(db.String(16), nullable=False)
    url = db.Column(db.String(512), nullable=False)
    payload = db.Column(db.JSON, nullable=True)
    headers = db.Column(db.JSON, nullable=True)
    run_id = db.Column(db.String(64), nullable=True)
    received_at = db.Column(db.DateTime, nullable=True, default=utcnow)

    def __repr__(self):
        return f"<WebhookLog {self.id} - {self.direction} {self.url}>"
