from schooladmin import app, db
from schooladmin.models import User, ReportProfile
from schooladmin.reports import default_columns
from werkzeug.security import generate_password_hash
import json
import os

with app.app_context():
    db.create_all()
    admin_user = os.environ.get('ADMIN_USERNAME')
    admin_pw_hash = os.environ.get('ADMIN_PASSWORD_HASH')
    admin_pw_plain = os.environ.get('ADMIN_PASSWORD')
    if admin_user and not User.query.filter_by(username=admin_user).first():
        if not admin_pw_hash and admin_pw_plain:
            admin_pw_hash = generate_password_hash(admin_pw_plain)
        if admin_pw_hash:
            user = User(username=admin_user, password_hash=admin_pw_hash, role='admin', name=admin_user)
            db.session.add(user)
            db.session.commit()
    if not ReportProfile.query.filter_by(name='Standard List').first():
        db.session.add(ReportProfile(name='Standard List', columns=json.dumps(default_columns())))
        db.session.commit()
