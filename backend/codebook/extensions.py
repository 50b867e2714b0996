# Overview: Flask extension instances for database and migrations, plus per-app external clients.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

EXTENSION_KEY = "codebook"


def init_clients(app) -> None:
    """
    Build the external service clients for this app from its config.

    Clients live in app.extensions so tests (or a second app in the same
    process) can swap them without touching module state.
    """
    from .services.payment_gateway import StripeGateway
    from .services.email_service import BrevoNotifier
    from .services.shipping_service import ShippoClient

    cfg = app.config
    app.extensions[EXTENSION_KEY] = {
        "payments": StripeGateway(
            api_key=cfg.get("STRIPE_SECRET_KEY"),
            webhook_secret=cfg.get("STRIPE_WEBHOOK_SECRET"),
        ),
        "notifier": BrevoNotifier(
            api_key=cfg.get("BREVO_API_KEY"),
            base_url=cfg["BREVO_BASE_URL"],
            sender_email=cfg["BREVO_SENDER_EMAIL"],
            sender_name=cfg["BREVO_SENDER_NAME"],
            timeout=cfg["HTTP_TIMEOUT_SECONDS"],
        ),
        "shipping": ShippoClient(
            api_key=cfg.get("SHIPPO_API_KEY"),
            base_url=cfg["SHIPPO_BASE_URL"],
            from_address=cfg["SHIPPO_FROM_ADDRESS"],
            timeout=cfg["HTTP_TIMEOUT_SECONDS"],
        ),
    }


def get_client(name: str):
    return current_app.extensions[EXTENSION_KEY][name]
