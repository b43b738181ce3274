from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///visitcontrol.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    FACILITY_TIMEZONE = os.getenv("FACILITY_TIMEZONE", "America/Argentina/Buenos_Aires")
    VISITOR_MIN_AGE = int(os.getenv("VISITOR_MIN_AGE", "18"))
    RESTRICTION_MIN_MOTIVE_LENGTH = int(os.getenv("RESTRICTION_MIN_MOTIVE_LENGTH", "10"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
