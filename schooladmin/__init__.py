import logging
import os
from datetime import timedelta

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from schooladmin.config import DevelopmentConfig, ProductionConfig, TestingConfig

logger = logging.getLogger(__name__)

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

# Compute DB URI for development using instance path
if env == "development":
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

db = SQLAlchemy(app)

# Configure session lifetime
app.permanent_session_lifetime = timedelta(minutes=int(app.config.get('SESSION_TIMEOUT_MINUTES', 120)))

from schooladmin.models import SchoolSetting, User  # noqa: E402
from schooladmin.settings import parse_setting  # noqa: E402
from schooladmin.store import RowStore  # noqa: E402
from schooladmin.audit import AuditSink  # noqa: E402

with app.app_context():
    db.create_all()
    store = RowStore(db.session)
    app.extensions['row_store'] = store
    app.extensions['audit_sink'] = AuditSink(store, app.config.get('AUDIT_LOG_MAX_ENTRIES', 1000))

    # Load DB-backed policy settings into app.config
    for s in SchoolSetting.query.filter(SchoolSetting.key.isnot(None)).all():
        if s.key.isupper() and s.value is not None:
            app.config[s.key] = parse_setting(s.value)

    admin_user = os.environ.get("ADMIN_USERNAME")
    if admin_user:
        try:
            if not User.query.filter_by(username=admin_user).first():
                admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
                admin_pw_plain = os.environ.get("ADMIN_PASSWORD") or "admin"
                pw_hash = admin_pw_hash or generate_password_hash(admin_pw_plain)
                db.session.add(User(username=admin_user, password_hash=pw_hash, role="admin", name=admin_user))
                db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Could not bootstrap admin user %s", admin_user, exc_info=True)

from schooladmin import routes  # noqa: E402,F401
