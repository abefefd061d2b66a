import logging
import threading
from collections import namedtuple

from schooladmin.models import (
    AttendanceRecord, AuditLog, FeeRecord, GalleryItem, GradeRule, Holiday, Mark,
    Notice, ReportProfile, SchoolSetting, Student, Teacher,
)

logger = logging.getLogger(__name__)

COLLECTIONS = {
    'students': Student,
    'teachers': Teacher,
    'notices': Notice,
    'gallery': GalleryItem,
    'attendance': AttendanceRecord,
    'fee_ledger': FeeRecord,
    'marks': Mark,
    'settings': SchoolSetting,
    'grading_rules': GradeRule,
    'holidays': Holiday,
    'report_profiles': ReportProfile,
    'audit_logs': AuditLog,
}

# Carries no row data: subscribers re-read the collection.
ChangeEvent = namedtuple('ChangeEvent', ['collection', 'kind', 'revision'])


class UnknownCollection(KeyError):
    pass


class RecordNotFound(LookupError):
    pass


class Subscription:
    def __init__(self, store, collection, callback):
        self.store = store
        self.collection = collection
        self.callback = callback
        self.active = True

    def close(self):
        if self.active:
            self.store._unsubscribe(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class RowStore:
    """CRUD and change notification over the named record collections."""

    def __init__(self, session, collections=None):
        self.session = session
        self.collections = dict(collections or COLLECTIONS)
        self._lock = threading.Lock()
        self._subscribers = {}
        self._revisions = {}

    def model_for(self, collection):
        try:
            return self.collections[collection]
        except KeyError:
            raise UnknownCollection(collection)

    def _load(self, collection, record_id):
        model = self.model_for(collection)
        obj = self.session.get(model, record_id)
        if obj is None:
            raise RecordNotFound(f"{collection}:{record_id}")
        return obj

    def get(self, collection, record_id):
        return self._load(collection, record_id).to_dict()

    def list(self, collection, order_by=None, descending=False, **filters):
        model = self.model_for(collection)
        query = self.session.query(model)
        if filters:
            query = query.filter_by(**model.columns_from(filters))
        column = getattr(model, order_by or 'id')
        query = query.order_by(column.desc() if descending else column.asc())
        return [obj.to_dict() for obj in query.all()]

    def insert(self, collection, record, **raw):
        """Insert a mapped record; ``raw`` sets columns the mapping hides, like password hashes."""
        model = self.model_for(collection)
        obj = model(**model.columns_from(record), **raw)
        self.session.add(obj)
        self.session.commit()
        self._notify(collection, 'INSERT')
        return obj.to_dict()

    def update(self, collection, record_id, patch, **raw):
        obj = self._load(collection, record_id)
        for name, value in dict(obj.columns_from(patch), **raw).items():
            setattr(obj, name, value)
        self.session.commit()
        self._notify(collection, 'UPDATE')
        return obj.to_dict()

    def delete(self, collection, record_id):
        obj = self._load(collection, record_id)
        self.session.delete(obj)
        self.session.commit()
        self._notify(collection, 'DELETE')

    def touch(self, collection, kind='UPDATE'):
        """Announce a change committed outside the store's own methods."""
        self.model_for(collection)
        self._notify(collection, kind)

    def subscribe(self, collection, callback):
        self.model_for(collection)
        sub = Subscription(self, collection, callback)
        with self._lock:
            self._subscribers.setdefault(collection, []).append(sub)
        return sub

    def _unsubscribe(self, sub):
        with self._lock:
            subs = self._subscribers.get(sub.collection, [])
            if sub in subs:
                subs.remove(sub)

    def revision(self, collection):
        self.model_for(collection)
        with self._lock:
            return self._revisions.get(collection, 0)

    def _notify(self, collection, kind):
        with self._lock:
            revision = self._revisions.get(collection, 0) + 1
            self._revisions[collection] = revision
            subs = list(self._subscribers.get(collection, []))
        event = ChangeEvent(collection, kind, revision)
        for sub in subs:
            try:
                sub.callback(event)
            except Exception:
                logger.warning("Change subscriber for %s failed", collection, exc_info=True)
