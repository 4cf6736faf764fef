# API Routes Module
from app.api.routes import (
    account,
    admin,
    admin_email,
    analysis,
    billing,
    feedback,
    subscriptions,
    unsubscribe,
    webhooks,
)

__all__ = [
    "account",
    "admin",
    "admin_email",
    "analysis",
    "billing",
    "feedback",
    "subscriptions",
    "unsubscribe",
    "webhooks",
]
