# backend/caisse/config.py
from __future__ import annotations
import os

from .permissions import DEFAULT_ROLE_PERMISSIONS


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/caisse.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///caisse.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("CAISSE_LOG_LEVEL", "INFO")

    # Sale cancellations must carry an auditable reason
    CANCEL_REASON_MIN_LENGTH = 5

    # Authorization oracle inputs (consulted by the transport layer only)
    CAISSE_ROLE_PERMISSIONS = DEFAULT_ROLE_PERMISSIONS
    CAISSE_USER_ROLES: dict[int, list[str]] = {}
    CAISSE_USER_PERMISSION_OVERRIDES: dict[int, dict[str, bool]] = {}
