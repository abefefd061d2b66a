import csv
import io
import logging

from sqlalchemy.exc import SQLAlchemyError

from schooladmin.models import AuditLog

logger = logging.getLogger(__name__)

ACTIONS = ('CREATE', 'UPDATE', 'DELETE', 'LOGIN', 'EXPORT', 'PAYMENT')


class AuditSink:
    """Persists audit entries without ever failing the calling action."""

    def __init__(self, store, max_entries=1000):
        self.store = store
        self.max_entries = max_entries

    def record(self, actor, action, module, details, actor_role=None):
        if action not in ACTIONS:
            logger.warning("Unknown audit action %r for module %s", action, module)
        try:
            entry = self.store.insert('audit_logs', {
                'actor': actor or 'system',
                'actorRole': actor_role,
                'action': action,
                'module': module,
                'details': details,
            })
            self._prune()
            return entry
        except SQLAlchemyError as exc:
            self.store.session.rollback()
            logger.warning(f"AuditLog {action}/{module} failed: {exc}")
            return None

    def _prune(self):
        session = self.store.session
        if not self.max_entries or session.query(AuditLog).count() <= self.max_entries:
            return
        keep = (session.query(AuditLog.id)
                .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .limit(self.max_entries))
        session.query(AuditLog).filter(AuditLog.id.notin_(keep.scalar_subquery())).delete(synchronize_session=False)
        session.commit()


def search(query, q=None, action=None, module=None):
    if action:
        query = query.filter(AuditLog.action == action)
    if module:
        query = query.filter(AuditLog.module == module)
    logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()
    if q:
        needle = q.lower()
        logs = [l for l in logs if needle in f"{l.actor} {l.details or ''} {l.module}".lower()]
    return logs


def export_csv(logs):
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(['created_at', 'actor', 'actor_role', 'action', 'module', 'details'])
    for l in logs:
        writer.writerow([
            l.created_at,
            l.actor or '',
            l.actor_role or '',
            l.action,
            l.module,
            (l.details or '').replace('\n', ' '),
        ])
    data = buf.getvalue()
    buf.close()
    return data
