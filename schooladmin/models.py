import json
from datetime import date, datetime

from schooladmin import db


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _parse_date(value):
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def _parse_datetime(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class RecordMixin:
    """Single snake_case <-> camelCase mapping shared by every collection."""

    # Columns never exposed through to_dict()
    __private__ = ("password_hash",)
    # Text columns holding JSON documents
    __json__ = ()

    @classmethod
    def _columns(cls):
        return {c.name: c for c in cls.__table__.columns}

    def to_dict(self):
        out = {}
        for name in self._columns():
            if name in self.__private__:
                continue
            value = getattr(self, name)
            if name in self.__json__:
                value = json.loads(value) if value else []
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[to_camel(name)] = value
        return out

    @classmethod
    def columns_from(cls, data):
        columns = cls._columns()
        by_key = {}
        for name in columns:
            by_key[name] = name
            by_key[to_camel(name)] = name
        values = {}
        for key, value in (data or {}).items():
            name = by_key.get(key)
            if name is None or name == "id" or name in cls.__private__:
                continue
            col_type = columns[name].type.python_type
            if name in cls.__json__:
                value = json.dumps(value or [])
            elif col_type is datetime:
                value = _parse_datetime(value)
            elif col_type is date:
                value = _parse_date(value)
            values[name] = value
        return values


class User(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='admin')
    name = db.Column(db.String(120))

    def __repr__(self):
        return f"User('{self.username}', role='{self.role}')"


class Student(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    gr_number = db.Column(db.String(50), unique=True, nullable=False)
    roll_no = db.Column(db.String(20))
    class_name = db.Column(db.String(50), index=True)
    section = db.Column(db.String(10))
    gender = db.Column(db.String(20))
    dob = db.Column(db.Date)
    admission_date = db.Column(db.Date)
    email = db.Column(db.String(120))
    father_name = db.Column(db.String(120))
    father_mobile = db.Column(db.String(20))
    mother_name = db.Column(db.String(120))
    mother_mobile = db.Column(db.String(20))
    residence_address = db.Column(db.Text)
    aadhar_no = db.Column(db.String(20))
    pen_no = db.Column(db.String(20))
    uid_id = db.Column(db.String(30))
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')
    cancel_reason = db.Column(db.String(255))
    cancel_date = db.Column(db.Date)
    cancelled_by = db.Column(db.String(120))
    password_hash = db.Column(db.String(256))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    attendances = db.relationship('AttendanceRecord', backref='student', lazy=True, cascade="all, delete-orphan")
    fees = db.relationship('FeeRecord', backref='student', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('Mark', backref='student', lazy=True, cascade="all, delete-orphan")

    @property
    def class_section(self):
        return f"{self.class_name or ''}-{self.section or ''}"

    def to_dict(self):
        out = super().to_dict()
        out['classSection'] = self.class_section
        return out

    def __repr__(self):
        return f"Student('{self.full_name}', gr='{self.gr_number}', status='{self.status}')"


class Teacher(RecordMixin, db.Model):
    __json__ = ("permissions",)

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    staff_id = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120))
    mobile = db.Column(db.String(20))
    alternate_mobile = db.Column(db.String(20))
    qualification = db.Column(db.String(200))
    subjects = db.Column(db.String(255))
    gender = db.Column(db.String(20))
    joining_date = db.Column(db.Date)
    residence_address = db.Column(db.Text)
    assigned_role = db.Column(db.String(30), nullable=False, default='SUBJECT_TEACHER')
    assigned_class = db.Column(db.String(50))
    assigned_section = db.Column(db.String(10))
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')
    last_login = db.Column(db.DateTime)
    username = db.Column(db.String(80), unique=True)
    password_hash = db.Column(db.String(256))
    permissions = db.Column(db.Text, nullable=False, default='[]')

    @property
    def capabilities(self):
        return json.loads(self.permissions) if self.permissions else []

    def __repr__(self):
        return f"Teacher('{self.full_name}', staff_id='{self.staff_id}', status='{self.status}')"


class AttendanceRecord(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # PRESENT, ABSENT, LATE, LEAVE
    marked_by = db.Column(db.String(120))
    class_name = db.Column(db.String(50))
    section = db.Column(db.String(10))
    __table_args__ = (db.UniqueConstraint('date', 'student_id', name='uix_attendance_date_student'),)

    def __repr__(self):
        return f"AttendanceRecord(date='{self.date}', student_id={self.student_id}, status='{self.status}')"


class FeeRecord(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    status = db.Column(db.String(20), nullable=False, default='PAID')  # PAID, PENDING, OVERDUE
    fee_type = db.Column(db.String(200))
    receipt_no = db.Column(db.String(60), unique=True)
    mode = db.Column(db.String(20))  # CASH, ONLINE
    issued_by = db.Column(db.String(120))

    def __repr__(self):
        return f"FeeRecord(student_id={self.student_id}, amount={self.amount}, receipt='{self.receipt_no}')"


class Mark(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    exam_id = db.Column(db.String(40), nullable=False, index=True)  # e.g. SA-1, FA-2
    subject = db.Column(db.String(80), nullable=False)
    total_marks = db.Column(db.Float, nullable=False)
    max_marks = db.Column(db.Float, nullable=False, default=100.0)
    entered_by = db.Column(db.String(120))
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    __table_args__ = (db.UniqueConstraint('student_id', 'exam_id', 'subject', name='uix_mark_student_exam_subject'),)

    def __repr__(self):
        return f"Mark(student_id={self.student_id}, exam='{self.exam_id}', subject='{self.subject}', marks={self.total_marks})"


class Notice(RecordMixin, db.Model):
    __json__ = ("attachments",)

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    # May start with an audience marker, see schooladmin.audience
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(40), nullable=False, default='GENERAL')
    date = db.Column(db.Date, nullable=False, default=date.today)
    posted_by = db.Column(db.String(120), nullable=False)
    attachments = db.Column(db.Text, nullable=False, default='[]')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"Notice('{self.title}', category='{self.category}')"


class GalleryItem(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.Text, nullable=False)
    media_type = db.Column(db.String(10), nullable=False, default='image')
    name = db.Column(db.String(200), nullable=False)
    # May start with an audience marker, see schooladmin.audience
    description = db.Column(db.Text)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    uploaded_by = db.Column(db.String(120), nullable=False)

    def __repr__(self):
        return f"GalleryItem('{self.name}', type='{self.media_type}')"


class GradeRule(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    grade = db.Column(db.String(5), nullable=False)
    min_percent = db.Column(db.Float, nullable=False)
    max_percent = db.Column(db.Float, nullable=False)
    point = db.Column(db.Float, nullable=False, default=0.0)
    remark = db.Column(db.String(120))

    def __repr__(self):
        return f"GradeRule('{self.grade}', {self.min_percent}-{self.max_percent})"


class Holiday(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    applies_to = db.Column(db.String(40), nullable=False, default='ALL')

    def __repr__(self):
        return f"Holiday('{self.name}', {self.start_date}->{self.end_date}, '{self.applies_to}')"


class ReportProfile(RecordMixin, db.Model):
    __json__ = ("columns",)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    columns = db.Column(db.Text, nullable=False, default='[]')
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"ReportProfile('{self.name}')"


class SchoolSetting(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text)
    group = db.Column(db.String(50))

    def __repr__(self):
        return f"SchoolSetting('{self.key}')"


class AuditLog(RecordMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(120), nullable=False)
    actor_role = db.Column(db.String(20))
    action = db.Column(db.String(20), nullable=False)
    module = db.Column(db.String(60), nullable=False)
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"AuditLog(action='{self.action}', actor='{self.actor}', module='{self.module}')"


# Convenience display helpers
def student_display_name(student: Student) -> str:
    if getattr(student, 'roll_no', None):
        return f"{student.full_name} ({student.roll_no})"
    return student.full_name
