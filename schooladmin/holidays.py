import re
from datetime import date

_DIGITS = re.compile(r"\d+")

# Inclusive grade buckets used by the holiday calendar.
BUCKETS = (
    (1, 8, "1 to 8"),
    (9, 10, "9 to 10"),
    (11, 12, "11 to 12"),
)

RANGE_CHOICES = ["ALL"] + [
    f"{label} {gender}" for _, _, label in BUCKETS for gender in ("girls", "boys")
]


def _gender(text):
    if "girls" in text:
        return "girls"
    if "boys" in text:
        return "boys"
    return None


def _bucket_label(grade):
    for low, high, label in BUCKETS:
        if low <= grade <= high:
            return label
    return None


def is_class_in_holiday_range(class_label, range_label) -> bool:
    """Tell whether a class such as ``"5 - GIRLS"`` falls in ``"1 to 8 girls"``."""
    if not class_label or not range_label:
        return False
    cls = str(class_label).lower()
    rng = str(range_label).strip().lower()
    if rng == "all":
        return True
    class_gender = _gender(cls)
    range_gender = _gender(rng)
    if class_gender and range_gender and class_gender != range_gender:
        return False
    match = _DIGITS.search(cls)
    if not match:
        return False
    label = _bucket_label(int(match.group(0)))
    if label is None:
        return False
    # "1 to 8" must not be found inside "11 to 12"
    return re.search(r"(?<!\d)" + re.escape(label) + r"(?!\d)", rng) is not None


def holidays_for_class(holidays, class_label, on=None):
    """Filter holiday records for a class, optionally those covering ``on``."""
    result = []
    for h in holidays:
        if not is_class_in_holiday_range(class_label, h.applies_to):
            continue
        if on is not None and not (h.start_date <= on <= (h.end_date or h.start_date)):
            continue
        result.append(h)
    return result


def is_holiday(holidays, class_label, on=None) -> bool:
    return bool(holidays_for_class(holidays, class_label, on or date.today()))
