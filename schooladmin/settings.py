import json
import re

from schooladmin.models import SchoolSetting

DISPLAY_DEFAULTS = {
    'fontFamily': "'Inter', sans-serif",
    'fontColor': '#0f172a',
    'accentColor': '#4f46e5',
    'backgroundImage': None,
    'bgOpacity': 10,
    'cardOpacity': 90,
    'glassBlur': 12,
}

FONT_OPTIONS = [
    "'Inter', sans-serif",
    "'Poppins', sans-serif",
    "'Roboto', sans-serif",
    "'Playfair Display', serif",
    "'Space Mono', monospace",
]

# Slider bounds
DISPLAY_RANGES = {
    'bgOpacity': (0, 100),
    'cardOpacity': (0, 100),
    'glassBlur': (0, 40),
}

MAX_BACKGROUND_BYTES = int(1.5 * 1024 * 1024)

SCHOOL_KEYS = ('school_name', 'school_logo', 'school_address')

SYSTEM_CATEGORIES = ['URGENT', 'GENERAL', 'ACADEMIC', 'EVENT']

_HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')


class SettingsError(ValueError):
    pass


def parse_setting(val):
    v = str(val).strip()
    low = v.lower()
    if low in ("1", "true", "yes", "on"):
        return True
    if low in ("0", "false", "no", "off"):
        return False
    try:
        return int(v)
    except ValueError:
        return v


def get_value(session, key, default=None):
    row = session.query(SchoolSetting).filter_by(key=key).first()
    return row.value if row is not None else default


def set_value(session, key, value, group=None):
    row = session.query(SchoolSetting).filter_by(key=key).first()
    if row is None:
        row = SchoolSetting(key=key, group=group)
        session.add(row)
    row.value = value
    return row


def clean_display(data, base=None):
    settings = dict(base or DISPLAY_DEFAULTS)
    for key, value in (data or {}).items():
        if key not in DISPLAY_DEFAULTS:
            continue
        if key in DISPLAY_RANGES:
            low, high = DISPLAY_RANGES[key]
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise SettingsError(f"{key} must be a number.")
            value = max(low, min(high, value))
        elif key in ('fontColor', 'accentColor'):
            if not _HEX_COLOR.match(str(value or '')):
                raise SettingsError(f"{key} must be a #rrggbb colour.")
        elif key == 'fontFamily':
            if value not in FONT_OPTIONS:
                raise SettingsError("Unsupported font family.")
        elif key == 'backgroundImage':
            if value and len(value) > MAX_BACKGROUND_BYTES:
                raise SettingsError("Image too large. Please keep under 1.5MB.")
            value = value or None
        settings[key] = value
    return settings


def load_display(session):
    raw = get_value(session, 'display_settings')
    stored = json.loads(raw) if raw else {}
    return clean_display(stored)


def save_display(session, data):
    settings = clean_display(data, base=load_display(session))
    set_value(session, 'display_settings', json.dumps(settings), group='display')
    return settings


def reset_display(session):
    set_value(session, 'display_settings', json.dumps(DISPLAY_DEFAULTS), group='display')
    return dict(DISPLAY_DEFAULTS)


def load_school(session, default_name):
    info = {key: get_value(session, key) for key in SCHOOL_KEYS}
    info['school_name'] = info['school_name'] or default_name
    return info


def notice_categories(session):
    raw = get_value(session, 'notice_categories')
    custom = json.loads(raw) if raw else []
    return SYSTEM_CATEGORIES + [c for c in custom if c not in SYSTEM_CATEGORIES]


def add_notice_category(session, name):
    name = (name or '').strip().upper()
    if not name:
        raise SettingsError("Category name is required.")
    categories = notice_categories(session)
    if name not in categories:
        custom = categories[len(SYSTEM_CATEGORIES):] + [name]
        set_value(session, 'notice_categories', json.dumps(custom), group='notices')
    return name


def remove_notice_category(session, name):
    name = (name or '').strip().upper()
    if name in SYSTEM_CATEGORIES:
        raise SettingsError("System categories cannot be deleted.")
    custom = [c for c in notice_categories(session)[len(SYSTEM_CATEGORIES):] if c != name]
    set_value(session, 'notice_categories', json.dumps(custom), group='notices')


def receipt_config(session, config):
    return {
        'prefix': get_value(session, 'receipt_prefix', config.get('RECEIPT_PREFIX', '')),
        'suffix': get_value(session, 'receipt_suffix', config.get('RECEIPT_SUFFIX', '')),
        'currentCounter': int(get_value(session, 'receipt_counter', config.get('RECEIPT_START_COUNTER', 1))),
    }


def format_receipt(cfg):
    return f"{cfg['prefix']}{cfg['currentCounter']:04d}{cfg['suffix']}"


def next_receipt_no(session, config):
    """Reserve the next receipt number; the caller commits."""
    cfg = receipt_config(session, config)
    receipt_no = format_receipt(cfg)
    set_value(session, 'receipt_counter', str(cfg['currentCounter'] + 1), group='finance')
    return receipt_no
