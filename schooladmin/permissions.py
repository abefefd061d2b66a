"""Capability whitelist that gates teacher actions."""

TEACHER_CAPABILITIES = {
    'MARK_ATTENDANCE': 'Mark daily attendance',
    'MANAGE_STUDENTS': 'Admit, edit and cancel students',
    'MANAGE_CLASSES': 'Move students, set roll numbers and promote',
    'COLLECT_FEES': 'Record fee payments and issue receipts',
    'POST_NOTICES': 'Publish and remove notices',
    'UPLOAD_GALLERY': 'Publish and remove gallery media',
    'ENTER_MARKS': 'Enter exam marks',
    'MANAGE_GRADING': 'Edit grading rules',
    'GENERATE_REPORTS': 'Design and export student reports',
    'MANAGE_HOLIDAYS': 'Maintain the holiday calendar',
}

DEFAULT_TEACHER_CAPABILITIES = ['MARK_ATTENDANCE', 'POST_NOTICES', 'UPLOAD_GALLERY']

ROLES = ('admin', 'teacher', 'student')


def normalize_capabilities(keys):
    wanted = {str(k).strip().upper() for k in (keys or [])}
    return [key for key in TEACHER_CAPABILITIES if key in wanted]


def has_capability(role, granted, key) -> bool:
    if role == 'admin':
        return True
    if role != 'teacher':
        return False
    return key in (granted or [])


def capability_matrix(granted):
    return {key: key in (granted or []) for key in TEACHER_CAPABILITIES}
