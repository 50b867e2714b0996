"""
Pytest fixtures for CodeBook backend tests.

Provides the test database, in-process fakes for the payment gateway, the
notifier and the shipping provider, plus user/admin accounts with tokens.
"""

import json
import uuid

import pytest

from codebook import create_app
from codebook.errors import ValidationError
from codebook.extensions import EXTENSION_KEY, db
from codebook.services import document_store, session_service
from codebook.services.auth_service import create_user
from codebook.services.email_service import BrevoNotifier
from codebook.services.payment_gateway import PaymentError
from codebook.time_utils import utcnow


# =============================================================================
# FAKE EXTERNAL CLIENTS
# =============================================================================

class FakeGateway:
    """Stands in for StripeGateway; keeps intents and refunds in memory."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.intents = {}
        self.by_key = {}
        self.refunds = []
        self.refund_error = None
        self.verify_error = None

    def add_intent(self, amount, *, status="succeeded", user_id=None, currency="usd"):
        intent_id = f"pi_{uuid.uuid4().hex[:16]}"
        self.intents[intent_id] = {
            "intent_id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "status": status,
            "amount": amount,
            "currency": currency,
            "metadata": {"userId": user_id} if user_id else {},
        }
        return intent_id

    def create_intent(self, amount_minor_units, currency, metadata, idempotency_key=None):
        if idempotency_key and idempotency_key in self.by_key:
            return dict(self.intents[self.by_key[idempotency_key]])
        intent_id = self.add_intent(amount_minor_units, status="requires_payment_method", currency=currency)
        self.intents[intent_id]["metadata"] = {k: str(v) for k, v in metadata.items() if v is not None}
        if idempotency_key:
            self.by_key[idempotency_key] = intent_id
        return dict(self.intents[intent_id])

    def verify(self, intent_id):
        if self.verify_error:
            raise self.verify_error
        if intent_id not in self.intents:
            raise PaymentError(f"No such payment_intent: '{intent_id}'")
        return dict(self.intents[intent_id])

    def refund(self, intent_id, amount=None, reason=None, idempotency_key=None):
        if self.refund_error:
            raise self.refund_error
        intent = self.intents.get(intent_id) or {"amount": amount or 0}
        refunded = amount if amount is not None else intent["amount"]
        result = {"refund_id": f"re_{uuid.uuid4().hex[:16]}", "amount_refunded": refunded, "status": "succeeded"}
        self.refunds.append({
            "intent_id": intent_id,
            "amount": amount,
            "reason": reason,
            "idempotency_key": idempotency_key,
            **result,
        })
        return result

    def parse_event(self, payload, signature):
        if signature != "valid-signature":
            raise ValidationError("Invalid webhook signature")
        event = json.loads(payload)
        return {"id": event["id"], "type": event["type"], "object": event["data"]["object"]}


class RecordingNotifier(BrevoNotifier):
    """Renders every e-mail for real but records it instead of sending."""

    def __init__(self):
        super().__init__(api_key=None, base_url="http://brevo.invalid", sender_email="noreply@test", sender_name="Test")
        self.sent = []

    def send(self, recipient, template_id, data):
        subject, body = self.render(template_id, data)
        self.sent.append({"to": recipient, "template": template_id, "subject": subject, "body": body})
        return True

    def templates(self):
        return [m["template"] for m in self.sent]


class FakeShipping:

    def __init__(self):
        self.labels = []
        self.error = None

    def create_label(self, order, options):
        if self.error:
            raise self.error
        label = {
            "tracking_number": f"9400{len(self.labels) + 1:018d}",
            "carrier": "usps",
            "label_url": "https://labels.example/label.pdf",
            "tracking_url": None,
            "transaction_id": uuid.uuid4().hex,
        }
        self.labels.append({"order_id": order["id"], "options": options, **label})
        return label


# =============================================================================
# APP / DB
# =============================================================================

@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'JWT_SECRET': 'test-jwt-secret',
        'ADMIN_NOTIFICATION_EMAIL': 'ops@codebook.test',
        'REQUIRE_VERIFIED_PAYMENT': False,
    })
    app.extensions[EXTENSION_KEY].update({
        "payments": FakeGateway(),
        "notifier": RecordingNotifier(),
        "shipping": FakeShipping(),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database and fresh fakes for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        clients = app.extensions[EXTENSION_KEY]
        clients["payments"].reset()
        clients["notifier"].sent.clear()
        clients["shipping"].labels.clear()
        clients["shipping"].error = None
        app.config['REQUIRE_VERIFIED_PAYMENT'] = False

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def gateway(app):
    return app.extensions[EXTENSION_KEY]["payments"]


@pytest.fixture
def notifier(app):
    return app.extensions[EXTENSION_KEY]["notifier"]


@pytest.fixture
def shipping(app):
    return app.extensions[EXTENSION_KEY]["shipping"]


# =============================================================================
# ACCOUNTS
# =============================================================================

def _context(user):
    return session_service.AuthContext(
        user_id=user["id"], email=user["email"], name=user["name"], role=user["role"]
    )


@pytest.fixture
def customer(db_session):
    return create_user("reader@example.com", "reader-pass", "Reader One")


@pytest.fixture
def other_customer(db_session):
    return create_user("second@example.com", "second-pass", "Reader Two")


@pytest.fixture
def admin(db_session):
    return create_user("boss@example.com", "boss-pass", "Store Boss", role="admin")


@pytest.fixture
def customer_ctx(customer):
    return _context(customer)


@pytest.fixture
def admin_ctx(admin):
    return _context(admin)


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {session_service.issue_token(customer)}"}


@pytest.fixture
def other_headers(other_customer):
    return {"Authorization": f"Bearer {session_service.issue_token(other_customer)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {session_service.issue_token(admin)}"}


# =============================================================================
# CATALOG / ORDERS
# =============================================================================

@pytest.fixture
def make_product(db_session):
    """Factory: make_product(stock=5, price=10) -> product document."""
    def _make(**fields):
        now = utcnow()
        record = {
            "id": fields.pop("id", uuid.uuid4().hex[:12]),
            "name": fields.pop("name", "Test Book"),
            "price": fields.pop("price", 10),
            "created_at": now,
            "updated_at": now,
            **fields,
        }
        return document_store.put("products", record, condition={"id__exists": False})
    return _make


@pytest.fixture
def cart_line():
    def _line(product, quantity=1):
        return {
            "product_id": product["id"],
            "name": product["name"],
            "price": product["price"],
            "quantity": quantity,
        }
    return _line
