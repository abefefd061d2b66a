"""Recover a locked-out account from the server shell.

    python reset_admin.py                 # admin account, created if missing
    python reset_admin.py --teacher STF-7 # staff id or login name
    python reset_admin.py --student GR-1042
"""
import argparse
import secrets
import string

from werkzeug.security import generate_password_hash

from schooladmin import app, db
from schooladmin.models import Student, Teacher, User


def generate_password(length: int = 12) -> str:
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def reset_password(username='admin', teacher=None, student=None):
    """Store a fresh password hash and return the plain password.

    Must run inside an application context. Teachers get the same
    ``tea####`` temporary form the admin console issues.
    """
    store = app.extensions['row_store']
    if teacher:
        row = Teacher.query.filter((Teacher.staff_id == teacher) | (Teacher.username == teacher)).first()
        if row is None:
            raise LookupError(f'No teacher with staff id or login {teacher!r}')
        new_pw = f"tea{1000 + secrets.randbelow(9000)}"
        store.update('teachers', row.id, {}, password_hash=generate_password_hash(new_pw))
        target = row.full_name
    elif student:
        row = Student.query.filter_by(gr_number=student).first()
        if row is None:
            raise LookupError(f'No student with GR number {student!r}')
        new_pw = generate_password()
        store.update('students', row.id, {}, password_hash=generate_password_hash(new_pw))
        target = row.full_name
    else:
        new_pw = generate_password(16)
        user = User.query.filter_by(username=username).first()
        if user is None:
            db.session.add(User(username=username, password_hash=generate_password_hash(new_pw),
                                role='admin', name='Administrator'))
        else:
            user.password_hash = generate_password_hash(new_pw)
        db.session.commit()
        target = username
    app.extensions['audit_sink'].record('system', 'UPDATE', 'Security',
                                        f'Shell intervention: Password reset for {target}')
    return new_pw


def main(argv=None):
    parser = argparse.ArgumentParser(description='Reset a login password.')
    parser.add_argument('username', nargs='?', default='admin', help='admin login to reset or create')
    who = parser.add_mutually_exclusive_group()
    who.add_argument('--teacher', help='staff id or login of a teacher')
    who.add_argument('--student', help='GR number of a student')
    args = parser.parse_args(argv)
    with app.app_context():
        try:
            new_pw = reset_password(args.username, teacher=args.teacher, student=args.student)
        except LookupError as e:
            parser.exit(1, f'{e}\n')
    # Only the password goes to stdout
    print(new_pw)


if __name__ == "__main__":
    main()
