import os


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_TIMEOUT_MINUTES = int(os.environ.get("SESSION_TIMEOUT_MINUTES", 120))
    SCHOOL_NAME = os.environ.get("SCHOOL_NAME", "Deen-E-islam School")
    # Audience targeting
    DEFAULT_SECTIONS = os.environ.get("DEFAULT_SECTIONS", "A,B,C,D")
    # Audit trail retention (newest entries kept)
    AUDIT_LOG_MAX_ENTRIES = int(os.environ.get("AUDIT_LOG_MAX_ENTRIES", 1000))
    # Attendance governance
    ATTENDANCE_ALLOW_EDIT = _env_flag("ATTENDANCE_ALLOW_EDIT", "true")
    # Finance
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "INR")
    RECEIPT_PREFIX = os.environ.get("RECEIPT_PREFIX", "DIS-")
    RECEIPT_SUFFIX = os.environ.get("RECEIPT_SUFFIX", "-2026")
    RECEIPT_START_COUNTER = int(os.environ.get("RECEIPT_START_COUNTER", 1001))
    # Bulk class operations
    MAX_BULK_ROWS = int(os.environ.get("MAX_BULK_ROWS", 500))


class DevelopmentConfig(BaseConfig):
    # Default to instance/school.db unless overridden
    INSTANCE_PATH = os.environ.get("FLASK_INSTANCE_PATH")

    @staticmethod
    def database_uri(instance_path: str) -> str:
        db_path = os.environ.get("DATABASE_PATH")
        if db_path:
            return f"sqlite:///{db_path}"
        return "sqlite:///" + os.path.join(instance_path, "school.db")


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URI", "sqlite:///:memory:")


class ProductionConfig(BaseConfig):
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URI", "sqlite:///school.db")
