import os


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///school_library.db",
    )

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-super-secret")

    # Mail
    MAIL_ENABLED = _flag("MAIL_ENABLED", "0")
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = True
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "Library System <library@school.edu>")

    # Circulation policy
    FINE_RATE_PER_DAY = os.getenv("FINE_RATE_PER_DAY", "0.25")
    MAX_BOOKS_STUDENT = int(os.getenv("MAX_BOOKS_PER_STUDENT", "3"))
    MAX_BOOKS_STAFF = int(os.getenv("MAX_BOOKS_PER_STAFF", "5"))
    LOAN_PERIOD_DAYS = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    RENEWAL_PERIOD_DAYS = int(os.getenv("RENEWAL_PERIOD_DAYS", "7"))
    MAX_RENEWALS = int(os.getenv("MAX_RENEWALS", "2"))
    HOLD_EXPIRY_DAYS = int(os.getenv("HOLD_EXPIRY_DAYS", "3"))
    DUE_REMINDER_DAYS = int(os.getenv("DUE_REMINDER_DAYS", "2"))
    FINE_THRESHOLD_FOR_CHECKOUT = os.getenv("FINE_THRESHOLD_FOR_CHECKOUT", "5.00")

    # Side effects go through the background scheduler when it is running
    NOTIFY_ASYNC = _flag("NOTIFY_ASYNC", "1")

    # Daily batch jobs (UTC)
    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", "1")
    JOBS_CRON_HOUR = int(os.getenv("JOBS_CRON_HOUR", "8"))
    JOBS_CRON_MINUTE = int(os.getenv("JOBS_CRON_MINUTE", "0"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"

    MAIL_ENABLED = True
    MAIL_SUPPRESS_SEND = True

    FINE_RATE_PER_DAY = "0.25"
    MAX_BOOKS_STUDENT = 3
    MAX_BOOKS_STAFF = 5
    LOAN_PERIOD_DAYS = 14
    RENEWAL_PERIOD_DAYS = 7
    MAX_RENEWALS = 2
    HOLD_EXPIRY_DAYS = 3
    DUE_REMINDER_DAYS = 2
    FINE_THRESHOLD_FOR_CHECKOUT = "5.00"

    NOTIFY_ASYNC = False
    SCHEDULER_ENABLED = False
