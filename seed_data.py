from schooladmin import app, db
from schooladmin.models import Student, Teacher, User, AttendanceRecord, FeeRecord, GradeRule, Mark, Holiday, Notice
from schooladmin import audience, settings
from schooladmin.permissions import DEFAULT_TEACHER_CAPABILITIES
from werkzeug.security import generate_password_hash
from datetime import date, timedelta
import json
import random

GRADES = [
    ('A1', 91, 100, 10.0, 'Outstanding'),
    ('A2', 81, 90, 9.0, 'Excellent'),
    ('B1', 71, 80, 8.0, 'Very Good'),
    ('B2', 61, 70, 7.0, 'Good'),
    ('C1', 51, 60, 6.0, 'Fair'),
    ('C2', 41, 50, 5.0, 'Average'),
    ('D', 33, 40, 4.0, 'Pass'),
    ('E', 0, 32, 0.0, 'Needs Improvement'),
]


def seed():
    with app.app_context():
        print("Seeding database...")

        # Create Admin User if not exists
        if not User.query.filter_by(username='admin').first():
            admin = User(username='admin', password_hash=generate_password_hash('admin'), role='admin', name='Administrator')
            db.session.add(admin)
            print("Created admin user.")

        # Create Teachers
        subjects = ['Mathematics', 'Science', 'English', 'Hindi', 'Social Studies']
        for i in range(1, 6):
            staff_id = f"STF-{100 + i}"
            if not Teacher.query.filter_by(staff_id=staff_id).first():
                t = Teacher(
                    full_name=f"Teacher {i}",
                    staff_id=staff_id,
                    email=f"teacher{i}@school.com",
                    mobile=f"98765000{i:02d}",
                    subjects=subjects[i - 1],
                    joining_date=date(2020, 6, 1),
                    gender=random.choice(['Male', 'Female']),
                    assigned_role='CLASS_TEACHER' if i <= 2 else 'SUBJECT_TEACHER',
                    assigned_class=f"{i + 4} - GIRLS" if i <= 2 else None,
                    assigned_section='A' if i <= 2 else None,
                    username=f"teacher{i}",
                    password_hash=generate_password_hash('teacher'),
                    permissions=json.dumps(DEFAULT_TEACHER_CAPABILITIES),
                )
                db.session.add(t)
        db.session.commit()
        print(f"Teachers: {Teacher.query.count()}")

        # Create Students
        for i in range(1, 21):
            gr_number = f"GR{1000 + i}"
            if not Student.query.filter_by(gr_number=gr_number).first():
                wing = random.choice(['GIRLS', 'BOYS'])
                s = Student(
                    full_name=f"Student {i}",
                    gr_number=gr_number,
                    class_name=f"{random.randint(1, 12)} - {wing}",
                    section=random.choice(['A', 'B', 'C', 'D']),
                    gender='Female' if wing == 'GIRLS' else 'Male',
                    admission_date=date(2025, 6, 1),
                    father_name=f"Parent {i}",
                    father_mobile=f"90000000{i:02d}",
                    password_hash=generate_password_hash('student'),
                )
                db.session.add(s)
        db.session.commit()
        students = Student.query.all()
        print(f"Students: {len(students)}")

        # Attendance for the last week
        for d in range(5):
            day = date.today() - timedelta(days=d)
            for stud in students:
                if not AttendanceRecord.query.filter_by(date=day, student_id=stud.id).first():
                    db.session.add(AttendanceRecord(
                        date=day, student_id=stud.id, marked_by='seed',
                        status=random.choice(['PRESENT', 'PRESENT', 'PRESENT', 'ABSENT', 'LATE']),
                        class_name=stud.class_name, section=stud.section,
                    ))
        db.session.commit()
        print("Created attendance.")

        # Fee receipts
        if not FeeRecord.query.first():
            for stud in students[:5]:
                receipt_no = settings.next_receipt_no(db.session, app.config)
                db.session.add(FeeRecord(student_id=stud.id, amount=1500.0, fee_type='Tuition Fee',
                                         receipt_no=receipt_no, mode='CASH', issued_by='seed'))
            db.session.commit()
            print("Created sample receipts.")

        if not GradeRule.query.first():
            for grade, low, high, point, remark in GRADES:
                db.session.add(GradeRule(grade=grade, min_percent=low, max_percent=high, point=point, remark=remark))
            db.session.commit()
            print("Created grading rules.")

        if not Mark.query.first():
            for stud in students:
                for subject in ('English', 'Maths', 'Science'):
                    db.session.add(Mark(student_id=stud.id, exam_id='SA-1', subject=subject,
                                        total_marks=random.randint(35, 100), max_marks=100, entered_by='seed'))
            db.session.commit()
            print("Created SA-1 marks.")

        if not Holiday.query.first():
            db.session.add(Holiday(name='Diwali Vacation', start_date=date(2026, 11, 7),
                                   end_date=date(2026, 11, 16), applies_to='ALL'))
            db.session.add(Holiday(name='Board Exam Prep Leave', start_date=date(2027, 2, 15),
                                   end_date=date(2027, 2, 28), applies_to='9 to 10'))
            db.session.commit()
            print("Created holidays.")

        if not Notice.query.first():
            db.session.add(Notice(title='Welcome Back', category='GENERAL', posted_by='Administrator',
                                  content='School reopens on Monday.'))
            db.session.add(Notice(title='Science Fair', category='EVENT', posted_by='Administrator',
                                  content=audience.attach('Projects due Friday.', ['8 - GIRLS', '8 - BOYS'], ['A', 'B'])))
            db.session.commit()
            print("Created notices.")

        print("Seeding complete.")

if __name__ == "__main__":
    seed()
