# backend/salonpos/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored in backend/instance/salonpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///salonpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External payment gateway (refunds only). No token means "not configured".
    PAYMENT_GATEWAY_BASE_URL = os.environ.get("PAYMENT_GATEWAY_BASE_URL", "https://api.mercadopago.com")
    PAYMENT_GATEWAY_ACCESS_TOKEN = os.environ.get("PAYMENT_GATEWAY_ACCESS_TOKEN")
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10"))

    # Upper bound for list endpoints
    POS_PAGE_SIZE_MAX = int(os.environ.get("POS_PAGE_SIZE_MAX", "50"))
