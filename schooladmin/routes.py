from flask import render_template, url_for, flash, redirect, request, jsonify, session, Response, abort
from schooladmin import app, db
import logging
logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)
from schooladmin.models import Student, Teacher, User, AttendanceRecord, FeeRecord, Mark, Notice, GradeRule, Holiday, ReportProfile, AuditLog, student_display_name
from schooladmin import audience, audit, classes, grading, holidays, permissions, reports, settings
from schooladmin.store import RecordNotFound
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from werkzeug.security import check_password_hash, generate_password_hash
from functools import wraps
import secrets
from datetime import date, datetime


def _store():
    return app.extensions['row_store']


def _json_request():
    return request.path.startswith('/api/')


def _payload():
    return request.get_json(silent=True) or {}


def _error(message, status=400):
    return jsonify({"error": message}), status


def _actor():
    return session.get('name') or session.get('user') or 'system'


def record_audit(action, module, details):
    app.extensions['audit_sink'].record(_actor(), action, module, details, actor_role=session.get('role'))


def _parse_day(value, default=None):
    if not value:
        return default
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        return None


@app.route("/")
def index():
    return redirect(url_for('dashboard'))


def _deny(status, message, category='danger'):
    if _json_request():
        return _error(message, status)
    flash(message, category)
    if status == 401:
        return redirect(url_for('login', next=request.path))
    return redirect(url_for('index'))


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get('logged_in'):
            return _deny(401, 'Please log in to access this page.', 'warning')
        return fn(*args, **kwargs)
    return wrapper


def roles_required(*roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not session.get('logged_in'):
                return _deny(401, 'Please log in to access this page.', 'warning')
            if session.get('role') not in roles:
                return _deny(403, 'You are not authorized to perform this action.')
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def current_teacher():
    if session.get('role') != 'teacher':
        return None
    return db.session.get(Teacher, session.get('user_id'))


def current_student():
    if session.get('role') != 'student':
        return None
    return db.session.get(Student, session.get('user_id'))


def capability_required(key):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not session.get('logged_in'):
                return _deny(401, 'Please log in to access this page.', 'warning')
            role = session.get('role')
            granted = []
            if role == 'teacher':
                teacher = current_teacher()
                if teacher is None or teacher.status != 'ACTIVE':
                    return _deny(403, 'Your account is not active.')
                granted = teacher.capabilities
            if not permissions.has_capability(role, granted, key):
                return _deny(403, 'You are not authorized to perform this action.')
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def _teacher_may_manage(class_label, section=None):
    # Class teachers are limited to their assigned class; others are not.
    teacher = current_teacher()
    if teacher is None or teacher.assigned_role != 'CLASS_TEACHER':
        return True
    return classes.teacher_can_manage(teacher, class_label, section)


# --- Authentication ---
@app.route("/login", methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        username = request.form.get('username', '').strip()
        password = request.form.get('password', '')
        identity = None
        user = User.query.filter_by(username=username).first()
        if user and check_password_hash(user.password_hash, password):
            identity = (user.id, user.role, user.name or user.username)
        teacher = None
        if identity is None:
            teacher = Teacher.query.filter_by(username=username).first()
            if teacher and teacher.password_hash and check_password_hash(teacher.password_hash, password):
                if teacher.status != 'ACTIVE':
                    flash('Your access has been revoked. Contact the administrator.', 'danger')
                    return render_template('login.html', title='Login'), 403
                identity = (teacher.id, 'teacher', teacher.full_name)
        if identity is None:
            student = Student.query.filter_by(gr_number=username).first()
            if student and student.password_hash and check_password_hash(student.password_hash, password):
                if student.status == 'CANCELLED':
                    flash('This admission has been cancelled.', 'danger')
                    return render_template('login.html', title='Login'), 403
                identity = (student.id, 'student', student.full_name)
        if identity is not None:
            user_id, role, name = identity
            session['logged_in'] = True
            session['user'] = username
            session['user_id'] = user_id
            session['role'] = role
            session['name'] = name
            session.permanent = True
            if teacher is not None:
                teacher.last_login = datetime.utcnow()
                db.session.commit()
            record_audit('LOGIN', 'Security', f'{name} signed in as {role}')
            flash('Logged in successfully.', 'success')
            next_url = request.args.get('next', '')
            if not next_url.startswith('/') or next_url.startswith('//'):
                next_url = url_for('dashboard')
            return redirect(next_url)
        flash('Invalid credentials.', 'danger')
    return render_template('login.html', title='Login')


@app.route("/logout")
def logout():
    session.clear()
    flash('You have been logged out.', 'info')
    return redirect(url_for('login'))


# --- Dashboard ---
def _visible_broadcasts(collection, text_key, order_by):
    records = _store().list(collection, order_by=order_by, descending=True)
    student = current_student()
    viewer_class = student.class_name if student else None
    viewer_section = student.section if student else None
    return list(audience.filter_for_viewer(
        records, lambda r: r.get(text_key), session.get('role'), viewer_class, viewer_section
    ))


def _present_broadcast(record, text_key):
    aud = audience.decode(record.get(text_key))
    out = dict(record)
    out[text_key] = aud.remainder
    out['audience'] = None if aud.classes is None else {'classes': aud.classes, 'sections': aud.sections}
    out['audienceLabel'] = audience.describe(aud)
    return out


@app.route('/dashboard')
@login_required
def dashboard():
    notices = [_present_broadcast(n, 'content') for n in _visible_broadcasts('notices', 'content', 'created_at')[:3]]
    stats = {}
    if session.get('role') != 'student':
        stats = {
            'students': Student.query.filter_by(status='ACTIVE').count(),
            'teachers': Teacher.query.count(),
            'collected': db.session.query(db.func.sum(FeeRecord.amount)).filter(FeeRecord.status == 'PAID').scalar() or 0.0,
        }
    return render_template('dashboard.html', title='Dashboard', notices=notices, stats=stats,
                           school=settings.load_school(db.session, app.config.get('SCHOOL_NAME')))


@app.route('/api/sync/<collection>')
@login_required
def sync_revision(collection):
    try:
        revision = _store().revision(collection)
    except KeyError:
        return _error('Unknown collection.', 404)
    return jsonify({"collection": collection, "revision": revision})


# --- Students: admission & cancellation ---
@app.route('/api/students')
@roles_required('admin', 'teacher')
def list_students():
    q = request.args.get('q', '').strip()
    query = Student.query
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Student.full_name.ilike(like), Student.gr_number.ilike(like)))
    class_name = request.args.get('class', '').strip()
    if class_name and class_name != 'All':
        query = query.filter(Student.class_name == class_name)
    section = request.args.get('section', '').strip()
    if section:
        query = query.filter(Student.section == section)
    status = request.args.get('status', '').strip().upper()
    if status:
        query = query.filter(Student.status == status)
    students = query.order_by(Student.created_at.desc(), Student.id.desc()).all()
    return jsonify([s.to_dict() for s in students])


@app.route('/api/students/<int:student_id>')
@login_required
def get_student(student_id):
    if session.get('role') == 'student' and session.get('user_id') != student_id:
        return _error('You are not authorized to perform this action.', 403)
    try:
        return jsonify(_store().get('students', student_id))
    except RecordNotFound:
        abort(404)


@app.route('/api/students', methods=['POST'])
@capability_required('MANAGE_STUDENTS')
def admit_student():
    data = _payload()
    full_name = (data.get('fullName') or '').strip()
    gr_number = (data.get('grNumber') or '').strip()
    if not full_name or not gr_number:
        return _error('Full name and GR number are required.')
    data = dict(data, fullName=full_name, grNumber=gr_number, status='ACTIVE')
    data.setdefault('admissionDate', date.today().isoformat())
    secret = {}
    if data.get('password'):
        secret['password_hash'] = generate_password_hash(data['password'])
    try:
        student = _store().insert('students', data, **secret)
    except IntegrityError:
        db.session.rollback()
        return _error(f'GR number {gr_number} already exists.', 409)
    except ValueError:
        db.session.rollback()
        return _error('Dates must use YYYY-MM-DD.')
    record_audit('CREATE', 'Registry', f'Enrolled: "{full_name}" (GR: {gr_number})')
    return jsonify(student), 201


@app.route('/api/students/<int:student_id>', methods=['PUT'])
@capability_required('MANAGE_STUDENTS')
def update_student(student_id):
    data = _payload()
    data.pop('status', None)
    secret = {}
    if data.get('password'):
        secret['password_hash'] = generate_password_hash(data['password'])
    try:
        student = _store().update('students', student_id, data, **secret)
    except RecordNotFound:
        abort(404)
    except IntegrityError:
        db.session.rollback()
        return _error('GR number already exists.', 409)
    except ValueError:
        db.session.rollback()
        return _error('Dates must use YYYY-MM-DD.')
    record_audit('UPDATE', 'Registry', f'Updated: "{student["fullName"]}" (GR: {student["grNumber"]})')
    return jsonify(student)


@app.route('/api/students/<int:student_id>/cancel', methods=['POST'])
@capability_required('MANAGE_STUDENTS')
def cancel_admission(student_id):
    student = db.get_or_404(Student, student_id)
    data = _payload()
    reason = (data.get('reason') or '').strip()
    if not reason:
        return _error('A cancellation reason is required.')
    cancel_date = _parse_day(data.get('cancelDate'), date.today())
    if cancel_date is None:
        return _error('Cancel date must use YYYY-MM-DD.')
    if student.status == 'CANCELLED':
        return _error('Admission is already cancelled.', 409)
    result = _store().update('students', student_id, {
        'status': 'CANCELLED',
        'cancelReason': reason.upper(),
        'cancelDate': cancel_date,
        'cancelledBy': _actor(),
    })
    record_audit('UPDATE', 'Registry', f'Admission Cancelled: {student.full_name} (GR: {student.gr_number})')
    return jsonify(result)


@app.route('/api/students/<int:student_id>/revert', methods=['POST'])
@capability_required('MANAGE_STUDENTS')
def revert_admission(student_id):
    student = db.get_or_404(Student, student_id)
    if student.status != 'CANCELLED':
        return _error('Admission is not cancelled.', 409)
    result = _store().update('students', student_id, {
        'status': 'ACTIVE',
        'cancelReason': None,
        'cancelDate': None,
        'cancelledBy': None,
    })
    record_audit('UPDATE', 'Registry', f'Restored Identity: {student.full_name} (GR: {student.gr_number})')
    return jsonify(result)


@app.route('/api/students/<int:student_id>', methods=['DELETE'])
@roles_required('admin')
def delete_student(student_id):
    student = db.get_or_404(Student, student_id)
    logger.info(f"Deleting student id={student_id}")
    _store().delete('students', student.id)
    record_audit('DELETE', 'Registry', 'Permanently Purged Student Identity Record')
    return '', 204


# --- Class management ---
def _selected_students(ids):
    try:
        ids = [int(i) for i in ids or []]
    except (TypeError, ValueError):
        return None
    if not ids or len(ids) > int(app.config.get('MAX_BULK_ROWS', 500)):
        return None
    return Student.query.filter(Student.id.in_(ids)).all()


@app.route('/api/classes/<path:class_name>/<section>/students')
@roles_required('admin', 'teacher')
def class_roster(class_name, section):
    students = Student.query.filter_by(class_name=class_name, section=section, status='ACTIVE').all()
    students.sort(key=classes.roll_sort_key)
    return jsonify([s.to_dict() for s in students])


@app.route('/api/classes/move', methods=['POST'])
@capability_required('MANAGE_CLASSES')
def move_students():
    data = _payload()
    target_class = (data.get('targetClass') or '').strip()
    target_section = (data.get('targetSection') or '').strip()
    if not target_class or not target_section:
        return _error('Target class and section are required.')
    students = _selected_students(data.get('studentIds'))
    if not students:
        return _error('Select the students to move.')
    sources = {(s.class_name, s.section) for s in students}
    if sources == {(target_class, target_section)}:
        return _error('Source and target are identical.')
    if not all(_teacher_may_manage(c, s) for c, s in sources):
        return _error('You can only manage your assigned class.', 403)
    for s in students:
        s.class_name = target_class
        s.section = target_section
        s.roll_no = None
    db.session.commit()
    _store().touch('students')
    source_label = ', '.join(sorted(f'{c}-{s}' for c, s in sources))
    record_audit('UPDATE', 'Class Management',
                 f'Moved {len(students)} students from {source_label} to {target_class}-{target_section}')
    return jsonify({"moved": len(students)})


@app.route('/api/classes/roll-numbers', methods=['POST'])
@capability_required('MANAGE_CLASSES')
def update_roll_numbers():
    data = _payload()
    class_name = (data.get('className') or '').strip()
    section = (data.get('section') or '').strip()
    if not class_name or not section:
        return _error('Class and section are required.')
    if not _teacher_may_manage(class_name, section):
        return _error('You can only manage your assigned class.', 403)
    roster = {s.id: s for s in Student.query.filter_by(class_name=class_name, section=section).all()}
    if data.get('auto'):
        order = data.get('order') or [s.id for s in sorted(roster.values(), key=classes.roll_sort_key)]
        try:
            roll_map = classes.auto_roll_numbers([int(i) for i in order])
        except (TypeError, ValueError):
            return _error('Order must list student ids.')
    else:
        try:
            roll_map = {int(k): str(v).strip() for k, v in (data.get('rollNumbers') or {}).items()}
        except (TypeError, ValueError):
            return _error('Roll numbers must be keyed by student id.')
    unknown = [sid for sid in roll_map if sid not in roster]
    if unknown:
        return _error(f'Students {unknown} are not in {class_name}-{section}.')
    for sid, roll in roll_map.items():
        roster[sid].roll_no = roll or None
    db.session.commit()
    _store().touch('students')
    record_audit('UPDATE', 'Class Management', f'Updated roll numbers for {class_name}-{section}')
    return jsonify({str(sid): roll for sid, roll in roll_map.items()})


@app.route('/api/classes/promote', methods=['POST'])
@capability_required('MANAGE_CLASSES')
def promote_students():
    data = _payload()
    source_class = (data.get('sourceClass') or '').strip()
    if not source_class:
        return _error('Source class is required.')
    next_grade = classes.next_promotion_grade(source_class)
    if next_grade == classes.GRADUATED:
        return _error('Students are already at the terminal grade (12th).', 409)
    if next_grade == source_class:
        return _error('Cannot determine the next grade for this class.')
    if not _teacher_may_manage(source_class):
        return _error('You can only manage your assigned class.', 403)
    students = _selected_students(data.get('studentIds'))
    if not students:
        return _error('Select the students to promote.')
    if any(s.class_name != source_class for s in students):
        return _error(f'All selected students must belong to {source_class}.')
    for s in students:
        s.class_name = next_grade
        s.roll_no = None
    db.session.commit()
    _store().touch('students')
    record_audit('UPDATE', 'Promotion', f'Promoted {len(students)} students to {next_grade}')
    return jsonify({"promoted": len(students), "className": next_grade})


# --- Attendance ---
ATTENDANCE_STATUSES = ('PRESENT', 'ABSENT', 'LATE', 'LEAVE')


@app.route('/api/attendance')
@login_required
def list_attendance():
    day = _parse_day(request.args.get('date'), date.today())
    if day is None:
        return _error('Date must use YYYY-MM-DD.')
    query = AttendanceRecord.query.filter_by(date=day)
    student = current_student()
    if session.get('role') == 'student':
        query = query.filter_by(student_id=student.id if student else -1)
    else:
        if request.args.get('class'):
            query = query.filter_by(class_name=request.args['class'])
        if request.args.get('section'):
            query = query.filter_by(section=request.args['section'])
    return jsonify([r.to_dict() for r in query.all()])


@app.route('/api/attendance', methods=['POST'])
@capability_required('MARK_ATTENDANCE')
def mark_attendance():
    data = _payload()
    day = _parse_day(data.get('date'), date.today())
    class_name = (data.get('className') or '').strip()
    section = (data.get('section') or '').strip()
    records = data.get('records') or {}
    if day is None:
        return _error('Date must use YYYY-MM-DD.')
    if not class_name or not section or not records:
        return _error('Class, section and at least one record are required.')
    if not _teacher_may_manage(class_name, section):
        return _error('You can only manage your assigned class.', 403)
    try:
        records = {int(k): str(v).upper() for k, v in records.items()}
    except (TypeError, ValueError):
        return _error('Records must be keyed by student id.')
    bad = [sid for sid, status in records.items() if status not in ATTENDANCE_STATUSES]
    if bad:
        return _error(f'Invalid status for students {bad}.')
    students = {s.id: s for s in Student.query.filter(Student.id.in_(list(records))).all()}
    missing = [sid for sid in records if sid not in students]
    if missing:
        return _error(f'Unknown students {missing}.', 404)
    outside = [sid for sid, s in students.items() if not _teacher_may_manage(s.class_name, s.section)]
    if outside:
        return _error(f'Students {sorted(outside)} are outside your assigned class.', 403)
    existing = {a.student_id: a for a in AttendanceRecord.query.filter(
        AttendanceRecord.date == day, AttendanceRecord.student_id.in_(list(records))).all()}
    saved = skipped = 0
    for sid, status in records.items():
        att = existing.get(sid)
        if att is None:
            db.session.add(AttendanceRecord(date=day, student_id=sid, status=status, marked_by=_actor(),
                                            class_name=students[sid].class_name, section=students[sid].section))
        elif app.config.get('ATTENDANCE_ALLOW_EDIT', True):
            att.status = status
            att.marked_by = _actor()
        else:
            skipped += 1
            continue
        saved += 1
    db.session.commit()
    _store().touch('attendance')
    record_audit('UPDATE', 'Attendance', f'Marked {saved} records for {class_name}-{section} on {day.isoformat()}')
    return jsonify({"saved": saved, "skipped": skipped})


@app.route('/api/attendance/students/<int:student_id>')
@login_required
def attendance_summary(student_id):
    if session.get('role') == 'student' and session.get('user_id') != student_id:
        return _error('You are not authorized to perform this action.', 403)
    db.get_or_404(Student, student_id)
    recs = AttendanceRecord.query.filter_by(student_id=student_id).all()
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    for r in recs:
        if r.status in counts:
            counts[r.status] += 1
    rate = ((counts['PRESENT'] + counts['LATE']) / len(recs) * 100.0) if recs else 0.0
    return jsonify({"studentId": student_id, "counts": counts, "rate": round(rate, 1)})


# --- Finance: Fees ---
@app.route('/api/fees/payments', methods=['POST'])
@capability_required('COLLECT_FEES')
def record_payment():
    data = _payload()
    try:
        student_id = int(data.get('studentId'))
        amount = float(data.get('amount'))
    except (TypeError, ValueError):
        return _error('Invalid payment details.')
    if amount <= 0:
        return _error('Amount must be greater than zero.')
    mode = (data.get('mode') or 'CASH').upper()
    if mode not in ('CASH', 'ONLINE'):
        return _error('Mode must be CASH or ONLINE.')
    student = db.session.get(Student, student_id)
    if not student:
        return _error('Student not found.', 404)
    if student.status == 'CANCELLED':
        return _error('Cannot collect fees for a cancelled admission.', 409)
    receipt_no = settings.next_receipt_no(db.session, app.config)
    try:
        record = _store().insert('fee_ledger', {
            'studentId': student_id,
            'amount': amount,
            'date': date.today(),
            'status': 'PAID',
            'feeType': (data.get('feeType') or 'General Fee').strip(),
            'receiptNo': receipt_no,
            'mode': mode,
            'issuedBy': _actor(),
        })
    except IntegrityError:
        db.session.rollback()
        return _error(f'Receipt number {receipt_no} is already in use.', 409)
    _store().touch('settings')
    currency = app.config.get('DEFAULT_CURRENCY')
    record_audit('PAYMENT', 'Finance', f'[{mode}] Issued receipt {receipt_no} to {student_display_name(student)} for {amount:.2f} {currency}')
    return jsonify(record), 201


@app.route('/api/fees/ledger')
@login_required
def fee_ledger():
    query = FeeRecord.query
    if session.get('role') == 'student':
        query = query.filter_by(student_id=session.get('user_id'))
    elif request.args.get('student_id'):
        query = query.filter_by(student_id=request.args.get('student_id', type=int))
    records = query.order_by(FeeRecord.date.desc(), FeeRecord.id.desc()).all()
    total = sum(r.amount for r in records if r.status == 'PAID')
    return jsonify({"records": [r.to_dict() for r in records], "totalPaid": total,
                    "currency": app.config.get('DEFAULT_CURRENCY')})


@app.route('/api/fees/receipt-config')
@roles_required('admin', 'teacher')
def get_receipt_config():
    cfg = settings.receipt_config(db.session, app.config)
    return jsonify(dict(cfg, preview=settings.format_receipt(cfg)))


@app.route('/api/fees/receipt-config', methods=['PUT'])
@roles_required('admin')
def update_receipt_config():
    data = _payload()
    try:
        counter = int(data.get('currentCounter', settings.receipt_config(db.session, app.config)['currentCounter']))
    except (TypeError, ValueError):
        return _error('Counter must be a number.')
    if counter < 1:
        return _error('Counter must be positive.')
    if 'prefix' in data:
        settings.set_value(db.session, 'receipt_prefix', str(data['prefix']), group='finance')
    if 'suffix' in data:
        settings.set_value(db.session, 'receipt_suffix', str(data['suffix']), group='finance')
    settings.set_value(db.session, 'receipt_counter', str(counter), group='finance')
    db.session.commit()
    _store().touch('settings')
    cfg = settings.receipt_config(db.session, app.config)
    record_audit('UPDATE', 'Finance', f"Modified receipt pattern: {cfg['prefix']}[n]{cfg['suffix']}")
    return jsonify(dict(cfg, preview=settings.format_receipt(cfg)))


# --- Notices / Notice Board ---
def _targets(data):
    classes = data.get('targetClasses') or []
    sections = data.get('targetSections') or []
    if not isinstance(classes, list):
        raise ValueError('Select at least one target class.')
    if not isinstance(sections, list):
        raise ValueError('Target sections must be a list.')
    target_classes = [str(c).strip() for c in classes if str(c).strip()]
    target_sections = [str(s).strip() for s in sections if str(s).strip()]
    if not target_sections:
        target_sections = [s.strip() for s in app.config.get('DEFAULT_SECTIONS', 'A,B,C,D').split(',') if s.strip()]
    return target_classes, target_sections


def _search(items, text_keys):
    q = request.args.get('q', '').strip().lower()
    if not q:
        return items
    return [i for i in items if q in ' '.join(str(i.get(k) or '') for k in text_keys).lower()]


@app.route('/notices')
@login_required
def notices():
    notices_list = [_present_broadcast(n, 'content') for n in _visible_broadcasts('notices', 'content', 'created_at')]
    return render_template('notices.html', notices=notices_list, title='Notice Board',
                           categories=settings.notice_categories(db.session))


@app.route('/api/notices')
@login_required
def list_notices():
    items = [_present_broadcast(n, 'content') for n in _visible_broadcasts('notices', 'content', 'created_at')]
    category = request.args.get('category', '').strip().upper()
    if category and category != 'ALL':
        items = [n for n in items if n['category'] == category]
    return jsonify(_search(items, ('title', 'content')))


@app.route('/api/notices', methods=['POST'])
@capability_required('POST_NOTICES')
def add_notice():
    data = _payload()
    title = (data.get('title') or '').strip()
    body = (data.get('content') or '').strip()
    if not title or not body:
        return _error('Title and content are required.')
    category = (data.get('category') or 'GENERAL').strip().upper()
    if category not in settings.notice_categories(db.session):
        return _error(f'Unknown category {category}.')
    try:
        target_classes, target_sections = _targets(data)
    except ValueError as e:
        return _error(str(e))
    if not target_classes:
        return _error('Select at least one target class.')
    notice = _store().insert('notices', {
        'title': title,
        'content': audience.attach(body, target_classes, target_sections),
        'category': category,
        'date': date.today(),
        'postedBy': _actor(),
        'attachments': data.get('attachments') or [],
    })
    record_audit('CREATE', 'Notices', f'Published new announcement: "{title}"')
    return jsonify(_present_broadcast(notice, 'content')), 201


@app.route('/api/notices/<int:notice_id>', methods=['DELETE'])
@capability_required('POST_NOTICES')
def delete_notice(notice_id):
    try:
        notice = _store().get('notices', notice_id)
        _store().delete('notices', notice_id)
    except RecordNotFound:
        abort(404)
    record_audit('DELETE', 'Notices', f'Purged announcement: "{notice["title"]}"')
    return '', 204


@app.route('/api/notices/categories')
@login_required
def list_notice_categories():
    return jsonify(settings.notice_categories(db.session))


@app.route('/api/notices/categories', methods=['POST'])
@capability_required('POST_NOTICES')
def add_notice_category():
    try:
        name = settings.add_notice_category(db.session, _payload().get('name'))
    except settings.SettingsError as e:
        return _error(str(e))
    db.session.commit()
    _store().touch('settings')
    record_audit('UPDATE', 'Notices', f'Added new announcement category: "{name}"')
    return jsonify(settings.notice_categories(db.session)), 201


@app.route('/api/notices/categories/<name>', methods=['DELETE'])
@capability_required('POST_NOTICES')
def delete_notice_category(name):
    try:
        settings.remove_notice_category(db.session, name)
    except settings.SettingsError as e:
        return _error(str(e), 409)
    db.session.commit()
    _store().touch('settings')
    record_audit('DELETE', 'Notices', f'Removed announcement category: "{name.upper()}"')
    return jsonify(settings.notice_categories(db.session))


# --- Media gallery ---
def _gallery_items():
    items = [_present_broadcast(g, 'description') for g in _visible_broadcasts('gallery', 'description', 'date')]
    media_type = request.args.get('type', 'all').lower()
    if media_type in ('image', 'video'):
        items = [g for g in items if g['mediaType'] == media_type]
    return _search(items, ('name', 'description'))


@app.route('/gallery')
@login_required
def gallery():
    return render_template('gallery.html', assets=_gallery_items(), title='Gallery')


@app.route('/api/gallery')
@login_required
def list_gallery():
    return jsonify(_gallery_items())


@app.route('/api/gallery', methods=['POST'])
@capability_required('UPLOAD_GALLERY')
def add_gallery_item():
    data = _payload()
    url = (data.get('url') or '').strip()
    name = (data.get('name') or '').strip()
    media_type = (data.get('mediaType') or 'image').lower()
    if not url or not name:
        return _error('Media URL and title are required.')
    if media_type not in ('image', 'video'):
        return _error('Only image and video media are supported.')
    try:
        target_classes, target_sections = _targets(data)
    except ValueError as e:
        return _error(str(e))
    if not target_classes:
        return _error('Select at least one target class.')
    item = _store().insert('gallery', {
        'url': url,
        'mediaType': media_type,
        'name': name,
        'description': audience.attach((data.get('description') or '').strip(), target_classes, target_sections),
        'date': datetime.utcnow(),
        'uploadedBy': _actor(),
    })
    record_audit('CREATE', 'Gallery', f'Media Published: {name}')
    return jsonify(_present_broadcast(item, 'description')), 201


@app.route('/api/gallery/<int:item_id>', methods=['DELETE'])
@capability_required('UPLOAD_GALLERY')
def delete_gallery_item(item_id):
    try:
        item = _store().get('gallery', item_id)
        _store().delete('gallery', item_id)
    except RecordNotFound:
        abort(404)
    record_audit('DELETE', 'Gallery', f'Media Removed: {item["name"]}')
    return '', 204


# --- Teachers ---
def _teacher_json(record):
    record = dict(record)
    record['capabilityMatrix'] = permissions.capability_matrix(record.get('permissions'))
    return record


@app.route('/api/teachers')
@roles_required('admin')
def list_teachers():
    q = request.args.get('q', '').strip()
    query = Teacher.query
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Teacher.full_name.ilike(like), Teacher.staff_id.ilike(like)))
    return jsonify([_teacher_json(t.to_dict()) for t in query.order_by(Teacher.full_name.asc()).all()])


@app.route('/api/teachers', methods=['POST'])
@roles_required('admin')
def add_teacher():
    data = _payload()
    full_name = (data.get('fullName') or '').strip()
    staff_id = (data.get('staffId') or '').strip()
    if not full_name or not staff_id:
        return _error('Name and Staff ID are required.')
    if data.get('assignedRole', 'SUBJECT_TEACHER') not in ('SUBJECT_TEACHER', 'CLASS_TEACHER'):
        return _error('Assigned role must be SUBJECT_TEACHER or CLASS_TEACHER.')
    perms = data.get('permissions')
    data = dict(data, fullName=full_name, staffId=staff_id, status=data.get('status') or 'ACTIVE',
                permissions=permissions.normalize_capabilities(
                    perms if perms is not None else permissions.DEFAULT_TEACHER_CAPABILITIES))
    if isinstance(data.get('subjects'), list):
        data['subjects'] = ', '.join(data['subjects'])
    secret = {}
    if data.get('password'):
        secret['password_hash'] = generate_password_hash(data['password'])
    try:
        teacher = _store().insert('teachers', data, **secret)
    except IntegrityError:
        db.session.rollback()
        return _error('Staff ID or username already exists.', 409)
    except ValueError:
        db.session.rollback()
        return _error('Dates must use YYYY-MM-DD.')
    record_audit('CREATE', 'Registry', f'Teacher Registered: {full_name}')
    return jsonify(_teacher_json(teacher)), 201


@app.route('/api/teachers/<int:teacher_id>', methods=['PUT'])
@roles_required('admin')
def update_teacher(teacher_id):
    data = _payload()
    data.pop('permissions', None)
    data.pop('status', None)
    if isinstance(data.get('subjects'), list):
        data['subjects'] = ', '.join(data['subjects'])
    secret = {}
    if data.get('password'):
        secret['password_hash'] = generate_password_hash(data['password'])
    try:
        teacher = _store().update('teachers', teacher_id, data, **secret)
    except RecordNotFound:
        abort(404)
    except IntegrityError:
        db.session.rollback()
        return _error('Staff ID or username already exists.', 409)
    except ValueError:
        db.session.rollback()
        return _error('Dates must use YYYY-MM-DD.')
    record_audit('UPDATE', 'Registry', f'Teacher Updated: {teacher["fullName"]}')
    return jsonify(_teacher_json(teacher))


@app.route('/api/teachers/<int:teacher_id>', methods=['DELETE'])
@roles_required('admin')
def delete_teacher(teacher_id):
    teacher = db.get_or_404(Teacher, teacher_id)
    _store().delete('teachers', teacher.id)
    record_audit('DELETE', 'Registry', f'Teacher Removed: {teacher.full_name}')
    return '', 204


@app.route('/api/teachers/<int:teacher_id>/block', methods=['POST'])
@roles_required('admin')
def toggle_teacher_block(teacher_id):
    teacher = db.get_or_404(Teacher, teacher_id)
    next_status = 'ACTIVE' if teacher.status == 'BLOCKED' else 'BLOCKED'
    result = _store().update('teachers', teacher_id, {'status': next_status})
    verb = 'Revoked' if next_status == 'BLOCKED' else 'Restored'
    record_audit('UPDATE', 'Access', f'{verb} access for {teacher.full_name}')
    return jsonify(_teacher_json(result))


@app.route('/api/teachers/<int:teacher_id>/reset-password', methods=['POST'])
@roles_required('admin')
def reset_teacher_password(teacher_id):
    teacher = db.get_or_404(Teacher, teacher_id)
    temp_password = f"tea{1000 + secrets.randbelow(9000)}"
    _store().update('teachers', teacher_id, {}, password_hash=generate_password_hash(temp_password))
    record_audit('UPDATE', 'Security', f'Admin intervention: Password reset for {teacher.full_name}')
    return jsonify({"temporaryPassword": temp_password})


@app.route('/api/teachers/<int:teacher_id>/permissions', methods=['PUT'])
@roles_required('admin')
def update_teacher_permissions(teacher_id):
    teacher = db.get_or_404(Teacher, teacher_id)
    requested = _payload().get('permissions')
    if not isinstance(requested, list):
        return _error('Permissions must be a list of capability keys.')
    unknown = [k for k in requested if str(k).strip().upper() not in permissions.TEACHER_CAPABILITIES]
    if unknown:
        return _error(f'Unknown capabilities {unknown}.')
    granted = permissions.normalize_capabilities(requested)
    result = _store().update('teachers', teacher_id, {'permissions': granted})
    record_audit('UPDATE', 'Access', f"Permissions for {teacher.full_name}: {', '.join(granted) or 'none'}")
    return jsonify(_teacher_json(result))


@app.route('/api/permissions')
@login_required
def list_capabilities():
    return jsonify({"capabilities": permissions.TEACHER_CAPABILITIES,
                    "defaults": permissions.DEFAULT_TEACHER_CAPABILITIES})


# --- Grading rules ---
@app.route('/api/grading')
@login_required
def list_grading_rules():
    rules = _store().list('grading_rules', order_by='min_percent', descending=True)
    percent = request.args.get('percent', type=float)
    if percent is None:
        return jsonify(rules)
    rule = grading.grade_for_percent(GradeRule.query.all(), percent)
    return jsonify({"percent": percent, "rule": rule.to_dict() if rule else None})


@app.route('/api/grading', methods=['POST'])
@capability_required('MANAGE_GRADING')
def add_grading_rule():
    try:
        data = grading.validate_rule(_payload())
    except ValueError as e:
        return _error(str(e))
    rule = _store().insert('grading_rules', data)
    record_audit('CREATE', 'Exams', f'Grading Updated: {rule["grade"]}')
    return jsonify(rule), 201


@app.route('/api/grading/<int:rule_id>', methods=['PUT'])
@capability_required('MANAGE_GRADING')
def update_grading_rule(rule_id):
    try:
        data = grading.validate_rule(_payload())
        rule = _store().update('grading_rules', rule_id, data)
    except RecordNotFound:
        abort(404)
    except ValueError as e:
        return _error(str(e))
    record_audit('UPDATE', 'Exams', f'Grading Updated: {rule["grade"]}')
    return jsonify(rule)


@app.route('/api/grading/<int:rule_id>', methods=['DELETE'])
@capability_required('MANAGE_GRADING')
def delete_grading_rule(rule_id):
    rule = db.get_or_404(GradeRule, rule_id)
    _store().delete('grading_rules', rule.id)
    record_audit('DELETE', 'Exams', f'Grading Removed: {rule.grade}')
    return '', 204


# --- Exam marks & report cards ---
@app.route('/api/marks')
@login_required
def list_marks():
    query = Mark.query
    if session.get('role') == 'student':
        student = current_student()
        query = query.filter_by(student_id=student.id if student else -1)
    elif request.args.get('student_id'):
        query = query.filter_by(student_id=request.args.get('student_id', type=int))
    if request.args.get('exam'):
        query = query.filter_by(exam_id=request.args['exam'])
    if request.args.get('class') and session.get('role') != 'student':
        query = query.join(Student).filter(Student.class_name == request.args['class'])
    marks = query.order_by(Mark.student_id, Mark.subject).all()
    return jsonify([m.to_dict() for m in marks])


@app.route('/api/marks', methods=['POST'])
@capability_required('ENTER_MARKS')
def enter_marks():
    data = _payload()
    exam_id = str(data.get('examId') or '').strip().upper()
    records = data.get('records') or {}
    if not exam_id or not isinstance(records, dict) or not records:
        return _error('Exam and at least one student record are required.')
    try:
        max_marks = float(data.get('maxMarks') or 100)
        entries = {}
        for sid, subjects in records.items():
            if not isinstance(subjects, dict) or not subjects:
                return _error('Each student needs marks keyed by subject.')
            entries[int(sid)] = {str(sub).strip(): float(val) for sub, val in subjects.items() if str(sub).strip()}
    except (TypeError, ValueError):
        return _error('Marks must be numbers keyed by student id and subject.')
    if max_marks <= 0:
        return _error('Maximum marks must be greater than zero.')
    bad = sorted(sid for sid, subjects in entries.items()
                 if any(not 0 <= val <= max_marks for val in subjects.values()))
    if bad:
        return _error(f'Marks for students {bad} must be between 0 and {max_marks:g}.')
    students = {s.id: s for s in Student.query.filter(Student.id.in_(list(entries))).all()}
    missing = [sid for sid in entries if sid not in students]
    if missing:
        return _error(f'Unknown students {missing}.', 404)
    outside = [sid for sid, s in students.items() if not _teacher_may_manage(s.class_name, s.section)]
    if outside:
        return _error(f'Students {sorted(outside)} are outside your assigned class.', 403)
    existing = {(m.student_id, m.subject): m for m in Mark.query.filter(
        Mark.exam_id == exam_id, Mark.student_id.in_(list(entries))).all()}
    saved = 0
    for sid, subjects in entries.items():
        for subject, value in subjects.items():
            mark = existing.get((sid, subject))
            if mark is None:
                db.session.add(Mark(student_id=sid, exam_id=exam_id, subject=subject, total_marks=value,
                                    max_marks=max_marks, entered_by=_actor()))
            else:
                mark.total_marks = value
                mark.max_marks = max_marks
                mark.entered_by = _actor()
            saved += 1
    db.session.commit()
    _store().touch('marks')
    record_audit('UPDATE', 'Exams', f'Marks Entered: {exam_id} for {len(entries)} students')
    return jsonify({"examId": exam_id, "saved": saved})


@app.route('/api/report-cards/<int:student_id>')
@login_required
def report_card(student_id):
    if session.get('role') == 'student' and session.get('user_id') != student_id:
        return _error('You can only view your own report card.', 403)
    student = db.get_or_404(Student, student_id)
    exam_id = request.args.get('exam', '').strip().upper()
    if not exam_id:
        return _error('Exam is required.')
    marks = Mark.query.filter_by(student_id=student.id, exam_id=exam_id).all()
    if not marks:
        return _error(f'No marks recorded for {exam_id}.', 404)
    card = grading.report_card(marks, GradeRule.query.all())
    card.update({
        'examId': exam_id,
        'student': {'id': student.id, 'name': student_display_name(student), 'grNumber': student.gr_number,
                    'rollNo': student.roll_no, 'classSection': student.class_section},
    })
    return jsonify(card)


# --- Holidays ---
@app.route('/api/holidays')
@login_required
def list_holidays():
    rows = Holiday.query.order_by(Holiday.start_date.asc()).all()
    class_label = request.args.get('class', '').strip()
    student = current_student()
    if student is not None:
        class_label = student.class_name
    on = None
    if request.args.get('date'):
        on = _parse_day(request.args.get('date'))
        if on is None:
            return _error('Date must use YYYY-MM-DD.')
    if class_label:
        rows = holidays.holidays_for_class(rows, class_label, on)
    elif on is not None:
        rows = [h for h in rows if h.start_date <= on <= (h.end_date or h.start_date)]
    return jsonify([h.to_dict() for h in rows])


@app.route('/api/holidays', methods=['POST'])
@capability_required('MANAGE_HOLIDAYS')
def add_holiday():
    data = _payload()
    name = (data.get('name') or '').strip()
    start = _parse_day(data.get('startDate'))
    end = _parse_day(data.get('endDate'), start)
    applies_to = (data.get('appliesTo') or 'ALL').strip()
    if not name or start is None or end is None:
        return _error('Name and valid start/end dates are required.')
    if end < start:
        return _error('End date cannot be before start date.')
    choices = {c.lower(): c for c in holidays.RANGE_CHOICES}
    if applies_to.lower() not in choices:
        return _error(f'Applies-to must be one of: {", ".join(holidays.RANGE_CHOICES)}.')
    holiday = _store().insert('holidays', {
        'name': name, 'startDate': start, 'endDate': end, 'appliesTo': choices[applies_to.lower()],
    })
    record_audit('CREATE', 'Holidays', f'Holiday Declared: {name} ({holiday["appliesTo"]})')
    return jsonify(holiday), 201


@app.route('/api/holidays/<int:holiday_id>', methods=['DELETE'])
@capability_required('MANAGE_HOLIDAYS')
def delete_holiday(holiday_id):
    holiday = db.get_or_404(Holiday, holiday_id)
    _store().delete('holidays', holiday.id)
    record_audit('DELETE', 'Holidays', f'Holiday Removed: {holiday.name}')
    return '', 204


# --- Student reports ---
@app.route('/api/reports/fields')
@capability_required('GENERATE_REPORTS')
def report_fields():
    return jsonify({"fields": reports.MASTER_FIELDS, "defaults": reports.default_columns()})


@app.route('/api/reports/profiles')
@capability_required('GENERATE_REPORTS')
def list_report_profiles():
    return jsonify(_store().list('report_profiles', order_by='name'))


@app.route('/api/reports/profiles', methods=['POST'])
@capability_required('GENERATE_REPORTS')
def add_report_profile():
    data = _payload()
    name = (data.get('name') or '').strip()
    if not name:
        return _error('Profile name is required.')
    try:
        columns = reports.validate_columns(data['columns']) if data.get('columns') else reports.default_columns()
    except reports.ReportError as e:
        return _error(str(e))
    try:
        profile = _store().insert('report_profiles', {'name': name, 'columns': columns})
    except IntegrityError:
        db.session.rollback()
        return _error(f'A profile named {name} already exists.', 409)
    record_audit('CREATE', 'Reports', f'Report profile created: {name}')
    return jsonify(profile), 201


@app.route('/api/reports/profiles/<int:profile_id>', methods=['PUT'])
@capability_required('GENERATE_REPORTS')
def update_report_profile(profile_id):
    data = _payload()
    patch = {}
    try:
        if 'columns' in data:
            patch['columns'] = reports.validate_columns(data['columns'])
    except reports.ReportError as e:
        return _error(str(e))
    if data.get('name'):
        patch['name'] = data['name'].strip()
    try:
        profile = _store().update('report_profiles', profile_id, patch)
    except RecordNotFound:
        abort(404)
    except IntegrityError:
        db.session.rollback()
        return _error('A profile with that name already exists.', 409)
    record_audit('UPDATE', 'Reports', f'Updated report layout: {profile["name"]}')
    return jsonify(profile)


@app.route('/api/reports/profiles/<int:profile_id>/columns', methods=['POST'])
@capability_required('GENERATE_REPORTS')
def edit_report_columns(profile_id):
    profile = db.get_or_404(ReportProfile, profile_id)
    data = _payload()
    op = (data.get('op') or '').lower()
    columns = profile.to_dict()['columns']
    try:
        if op == 'add':
            columns = reports.add_column(columns, data.get('key'))
        elif op == 'blank':
            columns = reports.add_blank_column(columns, data.get('label') or 'New Blank Column')
        elif op == 'remove':
            columns = reports.remove_column(columns, data.get('key'))
        elif op == 'move':
            columns = reports.move_column(columns, data.get('key'), data.get('direction'))
        elif op == 'style':
            columns = reports.style_column(columns, data.get('key'), label=data.get('label'),
                                           width=data.get('width'), font_size=data.get('fontSize'),
                                           bold=data.get('bold'), visible=data.get('visible'))
        else:
            return _error('Operation must be add, blank, remove, move or style.')
    except reports.ReportError as e:
        return _error(str(e))
    result = _store().update('report_profiles', profile_id, {'columns': columns})
    record_audit('UPDATE', 'Reports', f'Updated report layout: {profile.name}')
    return jsonify(result)


@app.route('/api/reports/profiles/<int:profile_id>', methods=['DELETE'])
@capability_required('GENERATE_REPORTS')
def delete_report_profile(profile_id):
    profile = db.get_or_404(ReportProfile, profile_id)
    _store().delete('report_profiles', profile.id)
    record_audit('DELETE', 'Reports', f'Report profile removed: {profile.name}')
    return '', 204


def _report_table(profile):
    class_filter = request.args.get('class', 'All').strip() or 'All'
    query = Student.query.filter_by(status='ACTIVE')
    if class_filter != 'All':
        query = query.filter_by(class_name=class_filter)
    students = sorted(query.all(), key=lambda s: (s.class_name or '', s.section or '', classes.roll_sort_key(s)))
    return class_filter, reports.build_table(profile.to_dict()['columns'], students)


@app.route('/reports/<int:profile_id>')
@capability_required('GENERATE_REPORTS')
def print_report(profile_id):
    profile = db.get_or_404(ReportProfile, profile_id)
    class_filter, table = _report_table(profile)
    school = settings.load_school(db.session, app.config.get('SCHOOL_NAME'))
    return render_template('report.html', title=f'GENERAL_REPORT_CLASS_{class_filter.upper()}',
                           profile=profile, table=table, school=school, class_filter=class_filter)


@app.route('/reports/<int:profile_id>.csv')
@capability_required('GENERATE_REPORTS')
def export_report(profile_id):
    profile = db.get_or_404(ReportProfile, profile_id)
    class_filter, table = _report_table(profile)
    filename = f"GENERAL_REPORT_CLASS_{class_filter.upper()}_{date.today().isoformat()}.csv"
    record_audit('EXPORT', 'Reports', f'Exported report "{profile.name}" for Class {class_filter}')
    return Response(
        reports.to_csv(table),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )


# --- Display & school settings ---
@app.route('/api/settings/display')
@login_required
def get_display_settings():
    return jsonify(settings.load_display(db.session))


@app.route('/api/settings/display', methods=['PUT'])
@roles_required('admin')
def update_display_settings():
    try:
        result = settings.save_display(db.session, _payload())
    except settings.SettingsError as e:
        return _error(str(e))
    db.session.commit()
    _store().touch('settings')
    record_audit('UPDATE', 'System', 'Global interface visual settings updated')
    return jsonify(result)


@app.route('/api/settings/display/reset', methods=['POST'])
@roles_required('admin')
def reset_display_settings():
    result = settings.reset_display(db.session)
    db.session.commit()
    _store().touch('settings')
    record_audit('UPDATE', 'System', 'Interface visual settings reset to defaults')
    return jsonify(result)


@app.route('/api/settings/school')
@login_required
def get_school_settings():
    return jsonify(settings.load_school(db.session, app.config.get('SCHOOL_NAME')))


@app.route('/api/settings/school', methods=['PUT'])
@roles_required('admin')
def update_school_settings():
    data = _payload()
    updated = []
    for key in settings.SCHOOL_KEYS:
        if key in data:
            settings.set_value(db.session, key, data[key] or None, group='identity')
            updated.append(key)
    db.session.commit()
    _store().touch('settings')
    school = settings.load_school(db.session, app.config.get('SCHOOL_NAME'))
    record_audit('UPDATE', 'Identity', f"School Identity Updated: {school['school_name']}")
    return jsonify(school)


# --- Audit trail ---
@app.route('/api/audit')
@roles_required('admin')
def admin_audit():
    logs = audit.search(AuditLog.query, q=request.args.get('q', '').strip(),
                        action=request.args.get('action', '').strip().upper(),
                        module=request.args.get('module', '').strip())
    return jsonify([log.to_dict() for log in logs])


@app.route('/api/audit/export')
@roles_required('admin')
def admin_audit_export():
    logs = audit.search(AuditLog.query, q=request.args.get('q', '').strip(),
                        action=request.args.get('action', '').strip().upper(),
                        module=request.args.get('module', '').strip())
    return Response(
        audit.export_csv(logs),
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename="audit_logs.csv"'}
    )


@app.route("/healthz")
def healthz():
    try:
        student_count = Student.query.count()
        teacher_count = Teacher.query.count()
        notice_count = Notice.query.count()
        return jsonify({"status": "ok", "students": student_count, "teachers": teacher_count,
                        "notices": notice_count}), 200
    except Exception as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500


@app.errorhandler(404)
def handle_404(error):
    if _json_request():
        return _error('Not found.', 404)
    return "<h1>404 Not Found</h1>", 404


@app.errorhandler(500)
def handle_500(error):
    logger.exception("Unhandled exception")
    if _json_request():
        return _error('Internal server error.', 500)
    return "<h1>500 Internal Server Error</h1>", 500
