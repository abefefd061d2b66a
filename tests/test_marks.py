
import unittest
import sys
import os

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schooladmin import app, db, grading
from schooladmin.models import Student, Teacher, Mark, GradeRule, AuditLog

RULES = [
    GradeRule(grade='A1', min_percent=91, max_percent=100, point=10, remark='Outstanding'),
    GradeRule(grade='A2', min_percent=81, max_percent=90, point=9, remark='Excellent'),
    GradeRule(grade='B1', min_percent=71, max_percent=80, point=8),
    GradeRule(grade='E', min_percent=0, max_percent=32, point=0),
]

class ReportCardHelperTests(unittest.TestCase):

    def test_totals_and_grades(self):
        marks = [
            Mark(subject='Science', total_marks=85, max_marks=100),
            Mark(subject='Maths', total_marks=95, max_marks=100),
        ]
        card = grading.report_card(marks, RULES)
        self.assertEqual([s['subject'] for s in card['subjects']], ['Maths', 'Science'])
        self.assertEqual([s['grade'] for s in card['subjects']], ['A1', 'A2'])
        self.assertEqual(card['totalObtained'], 180)
        self.assertEqual(card['totalMax'], 200)
        self.assertEqual(card['percentage'], 90.0)
        self.assertEqual(card['finalGrade'], 'A2')
        self.assertEqual(card['point'], 9)
        self.assertEqual(card['remark'], 'Excellent')

    def test_uneven_maximums_weight_by_marks(self):
        marks = [
            Mark(subject='Drawing', total_marks=50, max_marks=50),
            Mark(subject='English', total_marks=70, max_marks=100),
        ]
        card = grading.report_card(marks, RULES)
        self.assertEqual(card['percentage'], 80.0)
        self.assertEqual(card['finalGrade'], 'B1')

    def test_gap_in_rules_leaves_grade_empty(self):
        card = grading.report_card([Mark(subject='Maths', total_marks=50, max_marks=100)], RULES)
        self.assertEqual(card['percentage'], 50.0)
        self.assertIsNone(card['finalGrade'])
        self.assertIsNone(card['subjects'][0]['grade'])

class MarksRouteTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.a = Student(full_name='Ayesha', gr_number='GR1', roll_no='1', class_name='5 - GIRLS', section='A')
        self.b = Student(full_name='Zara', gr_number='GR2', roll_no='2', class_name='5 - GIRLS', section='A')
        self.other = Student(full_name='Omar', gr_number='GR9', class_name='9 - BOYS', section='C')
        self.teacher = Teacher(full_name='Ms Rao', staff_id='STF-1', assigned_role='CLASS_TEACHER',
                               assigned_class='5 - GIRLS', assigned_section='A', permissions='["ENTER_MARKS"]')
        self.helper = Teacher(full_name='Mr Das', staff_id='STF-2', permissions='["MARK_ATTENDANCE"]')
        db.session.add_all([self.a, self.b, self.other, self.teacher, self.helper])
        db.session.add_all([
            GradeRule(grade='A1', min_percent=91, max_percent=100, point=10),
            GradeRule(grade='A2', min_percent=81, max_percent=90, point=9),
            GradeRule(grade='B1', min_percent=71, max_percent=80, point=8),
        ])
        db.session.commit()
        self.login('teacher', self.teacher.id)

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def login(self, role, user_id):
        with self.client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user'] = role
            sess['user_id'] = user_id
            sess['role'] = role
            sess['name'] = 'Ms Rao'

    def enter(self, records, exam='SA-1', **extra):
        payload = {'examId': exam, 'records': {str(k): v for k, v in records.items()}}
        payload.update(extra)
        return self.client.post('/api/marks', json=payload)

    def test_enter_then_update(self):
        response = self.enter({self.a.id: {'Maths': 95, 'Science': 80}, self.b.id: {'Maths': 60}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {'examId': 'SA-1', 'saved': 3})
        response = self.enter({self.a.id: {'Science': 85}}, exam='sa-1')
        self.assertEqual(response.get_json()['saved'], 1)
        self.assertEqual(Mark.query.count(), 3)
        science = Mark.query.filter_by(student_id=self.a.id, subject='Science').one()
        self.assertEqual(science.total_marks, 85)
        self.assertEqual(science.exam_id, 'SA-1')
        self.assertEqual(AuditLog.query.filter_by(module='Exams').count(), 2)

    def test_marks_must_fit_maximum(self):
        self.assertEqual(self.enter({self.a.id: {'Maths': 101}}).status_code, 400)
        self.assertEqual(self.enter({self.a.id: {'Drawing': 45}}, maxMarks=40).status_code, 400)
        self.assertEqual(self.enter({self.a.id: {'Maths': 'ninety'}}).status_code, 400)
        self.assertEqual(self.enter({self.a.id: {'Maths': -1}}).status_code, 400)
        self.assertEqual(self.enter({}).status_code, 400)
        self.assertEqual(Mark.query.count(), 0)

    def test_unknown_student(self):
        self.assertEqual(self.enter({999: {'Maths': 50}}).status_code, 404)

    def test_class_teacher_limited_to_own_students(self):
        response = self.enter({self.a.id: {'Maths': 50}, self.other.id: {'Maths': 40}})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(Mark.query.count(), 0)

    def test_teacher_needs_enter_marks_capability(self):
        self.login('teacher', self.helper.id)
        self.assertEqual(self.enter({self.a.id: {'Maths': 50}}).status_code, 403)
        self.login('student', self.a.id)
        self.assertEqual(self.enter({self.a.id: {'Maths': 100}}).status_code, 403)

    def test_list_filters_by_exam_and_class(self):
        self.enter({self.a.id: {'Maths': 95}})
        self.enter({self.a.id: {'Maths': 70}}, exam='FA-1')
        self.login('admin', 1)
        self.enter({self.other.id: {'Maths': 40}})
        rows = self.client.get('/api/marks', query_string={'exam': 'SA-1', 'class': '5 - GIRLS'}).get_json()
        self.assertEqual([(r['studentId'], r['totalMarks']) for r in rows], [(self.a.id, 95)])
        self.assertEqual(len(self.client.get('/api/marks?exam=SA-1').get_json()), 2)

    def test_student_sees_only_own_marks(self):
        self.enter({self.a.id: {'Maths': 95}, self.b.id: {'Maths': 60}})
        self.login('student', self.b.id)
        rows = self.client.get('/api/marks').get_json()
        self.assertEqual([r['studentId'] for r in rows], [self.b.id])

    def test_report_card(self):
        self.enter({self.a.id: {'Maths': 95, 'Science': 85}})
        response = self.client.get(f'/api/report-cards/{self.a.id}?exam=SA-1')
        self.assertEqual(response.status_code, 200)
        card = response.get_json()
        self.assertEqual(card['examId'], 'SA-1')
        self.assertEqual(card['student']['name'], 'Ayesha (1)')
        self.assertEqual(card['totalObtained'], 180)
        self.assertEqual(card['totalMax'], 200)
        self.assertEqual(card['percentage'], 90.0)
        self.assertEqual(card['finalGrade'], 'A2')
        self.assertEqual({s['subject']: s['grade'] for s in card['subjects']}, {'Maths': 'A1', 'Science': 'A2'})

    def test_report_card_requires_marks_and_exam(self):
        self.assertEqual(self.client.get(f'/api/report-cards/{self.a.id}?exam=SA-2').status_code, 404)
        self.assertEqual(self.client.get(f'/api/report-cards/{self.a.id}').status_code, 400)
        self.assertEqual(self.client.get('/api/report-cards/999?exam=SA-1').status_code, 404)

    def test_student_reads_only_own_report_card(self):
        self.enter({self.a.id: {'Maths': 95}, self.b.id: {'Maths': 75}})
        self.login('student', self.b.id)
        self.assertEqual(self.client.get(f'/api/report-cards/{self.a.id}?exam=SA-1').status_code, 403)
        card = self.client.get(f'/api/report-cards/{self.b.id}?exam=SA-1').get_json()
        self.assertEqual(card['finalGrade'], 'B1')

    def test_deleting_student_drops_marks(self):
        self.enter({self.a.id: {'Maths': 95}})
        self.login('admin', 1)
        self.assertEqual(self.client.delete(f'/api/students/{self.a.id}').status_code, 204)
        self.assertEqual(Mark.query.count(), 0)

if __name__ == "__main__":
    unittest.main()
