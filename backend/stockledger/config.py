# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # What happens when an employee sells more than their received assignments cover:
    # "warn" records the shortfall and lets the sale through, "reject" refuses the sale.
    ASSIGNMENT_SHORTFALL_POLICY = os.environ.get("ASSIGNMENT_SHORTFALL_POLICY", "warn")

    # Retries for lock / stale-version conflicts on stock writes
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
