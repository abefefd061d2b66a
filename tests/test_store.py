
import unittest
import sys
import os
from datetime import date

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schooladmin import app, db
from schooladmin.models import Student, Teacher
from schooladmin.store import RowStore, RecordNotFound, UnknownCollection

class RowStoreTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.store = RowStore(db.session)

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_insert_maps_camel_case(self):
        record = self.store.insert('students', {
            'fullName': 'Ayesha Khan', 'grNumber': 'GR1', 'className': '5 - GIRLS',
            'section': 'A', 'dob': '2015-04-02', 'unknownField': 'ignored',
        })
        self.assertEqual(record['fullName'], 'Ayesha Khan')
        self.assertEqual(record['dob'], '2015-04-02')
        self.assertEqual(record['classSection'], '5 - GIRLS-A')
        self.assertNotIn('unknownField', record)
        self.assertNotIn('passwordHash', record)
        self.assertEqual(db.session.get(Student, record['id']).dob, date(2015, 4, 2))

    def test_snake_case_keys_accepted(self):
        record = self.store.insert('students', {'full_name': 'Sara', 'gr_number': 'GR2'})
        self.assertEqual(record['grNumber'], 'GR2')

    def test_raw_columns_bypass_mapping(self):
        record = self.store.insert('teachers', {'fullName': 'Mr Shah', 'staffId': 'S1', 'passwordHash': 'x'},
                                   password_hash='hashed')
        self.assertEqual(db.session.get(Teacher, record['id']).password_hash, 'hashed')

    def test_json_columns_round_trip(self):
        record = self.store.insert('teachers', {'fullName': 'Mr Shah', 'staffId': 'S1',
                                                'permissions': ['POST_NOTICES']})
        self.assertEqual(record['permissions'], ['POST_NOTICES'])
        self.assertEqual(db.session.get(Teacher, record['id']).capabilities, ['POST_NOTICES'])

    def test_update_get_and_delete(self):
        record = self.store.insert('students', {'fullName': 'Sara', 'grNumber': 'GR2'})
        updated = self.store.update('students', record['id'], {'rollNo': '7', 'id': 999})
        self.assertEqual(updated['rollNo'], '7')
        self.assertEqual(updated['id'], record['id'])
        self.assertEqual(self.store.get('students', record['id'])['rollNo'], '7')
        self.store.delete('students', record['id'])
        with self.assertRaises(RecordNotFound):
            self.store.get('students', record['id'])

    def test_list_filters_and_orders(self):
        self.store.insert('students', {'fullName': 'B', 'grNumber': 'GR2', 'className': '5 - GIRLS'})
        self.store.insert('students', {'fullName': 'A', 'grNumber': 'GR1', 'className': '5 - GIRLS'})
        self.store.insert('students', {'fullName': 'C', 'grNumber': 'GR3', 'className': '6 - GIRLS'})
        rows = self.store.list('students', order_by='full_name', className='5 - GIRLS')
        self.assertEqual([r['fullName'] for r in rows], ['A', 'B'])
        rows = self.store.list('students', order_by='full_name', descending=True)
        self.assertEqual([r['fullName'] for r in rows], ['C', 'B', 'A'])

    def test_unknown_collection(self):
        with self.assertRaises(UnknownCollection):
            self.store.list('timetables')
        with self.assertRaises(KeyError):
            self.store.revision('timetables')

    def test_missing_record(self):
        with self.assertRaises(RecordNotFound):
            self.store.update('students', 42, {'rollNo': '1'})

    def test_subscribers_receive_payload_free_events(self):
        events = []
        sub = self.store.subscribe('notices', events.append)
        self.store.insert('notices', {'title': 'T', 'content': 'C', 'postedBy': 'Admin'})
        self.store.touch('notices')
        self.store.insert('students', {'fullName': 'Sara', 'grNumber': 'GR2'})
        self.assertEqual([(e.collection, e.kind, e.revision) for e in events],
                         [('notices', 'INSERT', 1), ('notices', 'UPDATE', 2)])
        sub.close()
        self.store.touch('notices')
        self.assertEqual(len(events), 2)
        self.assertEqual(self.store.revision('notices'), 3)

    def test_subscription_as_context_manager(self):
        events = []
        with self.store.subscribe('students', events.append):
            self.store.touch('students')
        self.store.touch('students')
        self.assertEqual(len(events), 1)

    def test_failing_subscriber_does_not_break_writes(self):
        def broken(event):
            raise RuntimeError('client went away')
        events = []
        self.store.subscribe('students', broken)
        self.store.subscribe('students', events.append)
        with self.assertLogs('schooladmin.store', level='WARNING'):
            record = self.store.insert('students', {'fullName': 'Sara', 'grNumber': 'GR2'})
        self.assertEqual(record['fullName'], 'Sara')
        self.assertEqual(len(events), 1)

class SyncRouteTests(unittest.TestCase):

    def setUp(self):
        self.app = app
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        with self.client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user'] = 'admin'
            sess['role'] = 'admin'
            sess['name'] = 'Admin'

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def test_revision_advances_after_write(self):
        before = self.client.get('/api/sync/notices').get_json()['revision']
        response = self.client.post('/api/notices', json={
            'title': 'Exam', 'content': 'Starts Monday', 'targetClasses': ['5 - GIRLS']})
        self.assertEqual(response.status_code, 201)
        after = self.client.get('/api/sync/notices').get_json()['revision']
        self.assertEqual(after, before + 1)

    def test_unknown_collection(self):
        response = self.client.get('/api/sync/timetables')
        self.assertEqual(response.status_code, 404)

if __name__ == "__main__":
    unittest.main()
