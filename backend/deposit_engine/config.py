# backend/deposit_engine/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///deposits.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Active orders whose expected pickup date is older than this are swept to EXPIRED
    DEPOSIT_EXPIRY_GRACE_DAYS = int(os.environ.get("DEPOSIT_EXPIRY_GRACE_DAYS", "30"))

    WALK_IN_CUSTOMER_NAME = "Walk-in Customer"

    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
