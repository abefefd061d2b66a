"""Student report builder.

A report profile is an ordered list of column descriptors::

    {"key": "fullName", "label": "Student Name", "width": "250px",
     "fontSize": 12, "bold": False, "visible": True, "isBlank": False}

Profiles are stored as JSON in ``ReportProfile.columns`` and rendered into
printable tables or CSV.
"""
import csv
import io
import re
import time

MASTER_FIELDS = [
    {'key': 'fullName', 'label': 'Full Name'},
    {'key': 'grNumber', 'label': 'GR Number'},
    {'key': 'rollNo', 'label': 'Roll No'},
    {'key': 'classSection', 'label': 'Class & Section'},
    {'key': 'className', 'label': 'Class Only'},
    {'key': 'section', 'label': 'Section Only'},
    {'key': 'gender', 'label': 'Gender'},
    {'key': 'dob', 'label': 'Date of Birth'},
    {'key': 'admissionDate', 'label': 'Admission Date'},
    {'key': 'aadharNo', 'label': 'Aadhar No'},
    {'key': 'penNo', 'label': 'PEN No'},
    {'key': 'uidId', 'label': 'UID ID'},
    {'key': 'fatherName', 'label': 'Father Name'},
    {'key': 'fatherMobile', 'label': 'Father Mobile'},
    {'key': 'motherName', 'label': 'Mother Name'},
    {'key': 'motherMobile', 'label': 'Mother Mobile'},
    {'key': 'residenceAddress', 'label': 'Full Address'},
]

FIELD_LABELS = {f['key']: f['label'] for f in MASTER_FIELDS}

DEFAULT_WIDTH = '150px'
DEFAULT_FONT_SIZE = 12
MIN_FONT_SIZE, MAX_FONT_SIZE = 6, 32
_WIDTH = re.compile(r'^\d{1,4}(px|%)$')


class ReportError(ValueError):
    pass


def make_column(key, label, width=DEFAULT_WIDTH, font_size=DEFAULT_FONT_SIZE, bold=False, is_blank=False):
    return {
        'key': key,
        'label': label,
        'width': width,
        'fontSize': font_size,
        'bold': bold,
        'visible': True,
        'isBlank': is_blank,
    }


def default_columns():
    return [
        make_column('fullName', 'Student Name', width='250px', bold=True),
        make_column('grNumber', 'GR No', width='120px'),
        make_column('classSection', 'Class-Section', width='140px'),
        make_column('rollNo', 'Roll No', width='100px'),
        make_column('fatherMobile', 'Contact', width='150px'),
    ]


def _index(columns, key):
    for idx, col in enumerate(columns):
        if col['key'] == key:
            return idx
    raise ReportError(f"Column '{key}' is not part of this report.")


def available_fields(columns):
    used = {c['key'] for c in columns}
    return [f for f in MASTER_FIELDS if f['key'] not in used]


def add_column(columns, key):
    if key not in FIELD_LABELS:
        raise ReportError(f"Unknown field '{key}'.")
    if any(c['key'] == key for c in columns):
        return list(columns)
    return list(columns) + [make_column(key, FIELD_LABELS[key])]


def add_blank_column(columns, label='New Blank Column'):
    key = f"blank_{int(time.time() * 1000)}"
    while any(c['key'] == key for c in columns):
        key += '_'
    return list(columns) + [make_column(key, label, is_blank=True)]


def remove_column(columns, key):
    idx = _index(columns, key)
    return list(columns[:idx]) + list(columns[idx + 1:])


def move_column(columns, key, direction):
    idx = _index(columns, key)
    direction = (direction or '').upper()
    if direction not in ('UP', 'DOWN'):
        raise ReportError("Direction must be UP or DOWN.")
    target = idx - 1 if direction == 'UP' else idx + 1
    result = list(columns)
    if 0 <= target < len(result):
        result[idx], result[target] = result[target], result[idx]
    return result


def style_column(columns, key, label=None, width=None, font_size=None, bold=None, visible=None):
    idx = _index(columns, key)
    col = dict(columns[idx])
    if label is not None:
        if not str(label).strip():
            raise ReportError("Column label cannot be empty.")
        col['label'] = str(label).strip()
    if width is not None:
        if not _WIDTH.match(str(width)):
            raise ReportError("Width must look like '150px' or '20%'.")
        col['width'] = str(width)
    if font_size is not None:
        try:
            size = int(font_size)
        except (TypeError, ValueError):
            raise ReportError("Font size must be a number.")
        if not MIN_FONT_SIZE <= size <= MAX_FONT_SIZE:
            raise ReportError(f"Font size must be between {MIN_FONT_SIZE} and {MAX_FONT_SIZE}.")
        col['fontSize'] = size
    if bold is not None:
        col['bold'] = bool(bold)
    if visible is not None:
        col['visible'] = bool(visible)
    result = list(columns)
    result[idx] = col
    return result


def validate_columns(columns):
    """Normalise a column list received from a client."""
    if not isinstance(columns, list):
        raise ReportError("Columns must be a list.")
    seen = set()
    clean = []
    for raw in columns:
        if not isinstance(raw, dict) or not raw.get('key'):
            raise ReportError("Every column needs a key.")
        key = str(raw['key'])
        if key in seen:
            raise ReportError(f"Duplicate column '{key}'.")
        seen.add(key)
        is_blank = bool(raw.get('isBlank')) or key.startswith('blank_')
        if not is_blank and key not in FIELD_LABELS:
            raise ReportError(f"Unknown field '{key}'.")
        col = make_column(key, raw.get('label') or FIELD_LABELS.get(key, ''), is_blank=is_blank)
        clean += style_column(
            [col], key,
            width=raw.get('width', DEFAULT_WIDTH),
            font_size=raw.get('fontSize', DEFAULT_FONT_SIZE),
            bold=raw.get('bold', False),
            visible=raw.get('visible', True),
        )
    return clean


def build_table(columns, students):
    """Render visible columns into a header row and upper-cased data rows."""
    visible = [c for c in columns if c.get('visible', True)]
    header = ['SR.'] + [c['label'].upper() for c in visible]
    rows = []
    for idx, student in enumerate(students):
        record = student if isinstance(student, dict) else student.to_dict()
        row = [idx + 1]
        for c in visible:
            if c.get('isBlank'):
                row.append('')
                continue
            value = record.get(c['key'])
            row.append(str(value).upper() if value not in (None, '') else '-')
        rows.append(row)
    return {'columns': visible, 'header': header, 'rows': rows}


def to_csv(table):
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(table['header'])
    writer.writerows(table['rows'])
    data = buf.getvalue()
    buf.close()
    return data
