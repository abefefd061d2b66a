import re

TERMINAL_GRADE = 12
GRADUATED = "GRADUATED"


def next_promotion_grade(class_label):
    """Compute the class a student moves to on promotion.

    ``"5 - GIRLS"`` becomes ``"6 - GIRLS"``. Labels without a number are
    returned unchanged and the final grade maps to ``GRADUATED``.
    """
    match = re.search(r"\d+", class_label or "")
    if not match:
        return class_label
    current = int(match.group(0))
    if current >= TERMINAL_GRADE:
        return GRADUATED
    wing = "GIRLS" if "GIRLS" in class_label.upper() else "BOYS"
    return f"{current + 1} - {wing}"


def roll_sort_key(student):
    try:
        return int(student.roll_no)
    except (TypeError, ValueError):
        return 999


def auto_roll_numbers(student_ids):
    return {sid: str(idx + 1) for idx, sid in enumerate(student_ids)}


def teacher_can_manage(teacher, class_label, section=None) -> bool:
    # Assigned class is matched by substring, the same way notices are filtered.
    if teacher is None or not teacher.assigned_class:
        return False
    if teacher.assigned_class.upper() not in (class_label or "").upper():
        return False
    if section and teacher.assigned_section:
        return teacher.assigned_section.upper() in section.upper()
    return True
