
import unittest
import sys
import os
from datetime import date

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schooladmin import app, db, holidays
from schooladmin.models import Holiday, Student, Teacher

class HolidayRangeTests(unittest.TestCase):

    def test_boundaries(self):
        self.assertTrue(holidays.is_class_in_holiday_range('8 - BOYS', '1 to 8 boys'))
        self.assertFalse(holidays.is_class_in_holiday_range('9 - BOYS', '1 to 8 boys'))
        self.assertTrue(holidays.is_class_in_holiday_range('9 - GIRLS', '9 to 10 girls'))
        self.assertTrue(holidays.is_class_in_holiday_range('12 - BOYS', '11 to 12 boys'))
        self.assertTrue(holidays.is_class_in_holiday_range('1 - GIRLS', '1 to 8 girls'))
        self.assertFalse(holidays.is_class_in_holiday_range('11 - GIRLS', '1 to 8 girls'))

    def test_all_matches_everything(self):
        self.assertTrue(holidays.is_class_in_holiday_range('5 - GIRLS', 'ALL'))
        self.assertTrue(holidays.is_class_in_holiday_range('NURSERY', 'all'))

    def test_gender_mismatch(self):
        self.assertFalse(holidays.is_class_in_holiday_range('5 - BOYS', '1 to 8 girls'))

    def test_range_without_gender_matches_any(self):
        self.assertTrue(holidays.is_class_in_holiday_range('5 - BOYS', '1 to 8'))
        self.assertTrue(holidays.is_class_in_holiday_range('5 - GIRLS', '1 to 8'))

    def test_class_without_gender(self):
        self.assertTrue(holidays.is_class_in_holiday_range('10', '9 to 10 boys'))

    def test_no_digits_never_matches(self):
        self.assertFalse(holidays.is_class_in_holiday_range('NURSERY', '1 to 8 girls'))
        self.assertFalse(holidays.is_class_in_holiday_range('', '1 to 8 girls'))
        self.assertFalse(holidays.is_class_in_holiday_range(None, '1 to 8 girls'))

    def test_case_insensitive(self):
        self.assertTrue(holidays.is_class_in_holiday_range('5 - girls', '1 TO 8 GIRLS'))

    def test_grade_outside_buckets(self):
        self.assertFalse(holidays.is_class_in_holiday_range('13 - BOYS', '11 to 12 boys'))

    def test_holidays_for_class_by_date(self):
        diwali = Holiday(name='Diwali', start_date=date(2026, 11, 7), end_date=date(2026, 11, 16), applies_to='ALL')
        prep = Holiday(name='Prep', start_date=date(2027, 2, 15), end_date=date(2027, 2, 28), applies_to='9 to 10 boys')
        rows = [diwali, prep]
        self.assertEqual(holidays.holidays_for_class(rows, '9 - BOYS'), rows)
        self.assertEqual(holidays.holidays_for_class(rows, '9 - GIRLS'), [diwali])
        self.assertEqual(holidays.holidays_for_class(rows, '9 - BOYS', date(2027, 2, 20)), [prep])
        self.assertTrue(holidays.is_holiday(rows, '3 - GIRLS', date(2026, 11, 10)))
        self.assertFalse(holidays.is_holiday(rows, '3 - GIRLS', date(2026, 12, 1)))

class HolidayRouteTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        with self.client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user'] = 'admin'
            sess['user_id'] = 1
            sess['role'] = 'admin'
            sess['name'] = 'Admin'

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_declare_and_filter_by_class(self):
        response = self.client.post('/api/holidays', json={
            'name': 'Winter Break', 'startDate': '2026-12-24', 'endDate': '2026-12-31', 'appliesTo': '1 TO 8 GIRLS'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['appliesTo'], '1 to 8 girls')
        response = self.client.get('/api/holidays', query_string={'class': '5 - GIRLS'})
        self.assertEqual([h['name'] for h in response.get_json()], ['Winter Break'])
        response = self.client.get('/api/holidays', query_string={'class': '5 - BOYS'})
        self.assertEqual(response.get_json(), [])

    def test_rejects_unknown_range(self):
        response = self.client.post('/api/holidays', json={
            'name': 'Odd', 'startDate': '2026-12-24', 'appliesTo': '3 to 5 girls'})
        self.assertEqual(response.status_code, 400)

    def test_rejects_end_before_start(self):
        response = self.client.post('/api/holidays', json={
            'name': 'Odd', 'startDate': '2026-12-24', 'endDate': '2026-12-01'})
        self.assertEqual(response.status_code, 400)

    def test_student_sees_holidays_for_own_class(self):
        db.session.add(Holiday(name='Girls Sports Day', start_date=date(2026, 11, 1), applies_to='1 to 8 girls'))
        db.session.add(Holiday(name='Boys Sports Day', start_date=date(2026, 11, 2), applies_to='1 to 8 boys'))
        student = Student(full_name='Sara', gr_number='GR1', class_name='4 - GIRLS', section='A')
        db.session.add(student)
        db.session.commit()
        with self.client.session_transaction() as sess:
            sess['role'] = 'student'
            sess['user_id'] = student.id
        response = self.client.get('/api/holidays', query_string={'class': '4 - BOYS'})
        self.assertEqual([h['name'] for h in response.get_json()], ['Girls Sports Day'])

    def test_teacher_needs_capability(self):
        teacher = Teacher(full_name='Mr Shah', staff_id='STF-2', permissions='["MARK_ATTENDANCE"]')
        db.session.add(teacher)
        db.session.commit()
        with self.client.session_transaction() as sess:
            sess['role'] = 'teacher'
            sess['user_id'] = teacher.id
        response = self.client.post('/api/holidays', json={'name': 'X', 'startDate': '2026-12-24'})
        self.assertEqual(response.status_code, 403)

if __name__ == "__main__":
    unittest.main()
