def grade_for_percent(rules, percent):
    """Return the first rule whose inclusive range holds ``percent``."""
    if percent is None:
        return None
    for rule in sorted(rules, key=lambda r: r.min_percent, reverse=True):
        if rule.min_percent <= percent <= rule.max_percent:
            return rule
    return None


def validate_rule(data):
    grade = (data.get('grade') or '').strip().upper()
    if not grade:
        raise ValueError('Grade is required.')
    try:
        low = float(data.get('minPercent', data.get('min_percent')))
        high = float(data.get('maxPercent', data.get('max_percent')))
        point = float(data.get('point') or 0)
    except (TypeError, ValueError):
        raise ValueError('Percent range and point must be numbers.')
    if not 0 <= low <= high <= 100:
        raise ValueError('Percent range must satisfy 0 <= min <= max <= 100.')
    return {
        'grade': grade,
        'minPercent': low,
        'maxPercent': high,
        'point': point,
        'remark': (data.get('remark') or '').strip() or None,
    }


def report_card(marks, rules):
    """Total one exam's marks and grade each subject and the whole card.

    ``marks`` are Mark rows for a single student and exam. Percentages are
    rounded to two places before they are graded.
    """
    subjects = []
    obtained = maximum = 0.0
    for mark in sorted(marks, key=lambda m: m.subject):
        percent = round(mark.total_marks / mark.max_marks * 100, 2) if mark.max_marks else 0.0
        rule = grade_for_percent(rules, percent)
        subjects.append({
            'subject': mark.subject,
            'totalMarks': mark.total_marks,
            'maxMarks': mark.max_marks,
            'percentage': percent,
            'grade': rule.grade if rule else None,
        })
        obtained += mark.total_marks
        maximum += mark.max_marks
    percentage = round(obtained / maximum * 100, 2) if maximum else 0.0
    final = grade_for_percent(rules, percentage)
    return {
        'subjects': subjects,
        'totalObtained': obtained,
        'totalMax': maximum,
        'percentage': percentage,
        'finalGrade': final.grade if final else None,
        'point': final.point if final else None,
        'remark': final.remark if final else None,
    }
