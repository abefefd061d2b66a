"""Audience targeting for notices and gallery items.

Targets are stored inline, at the head of the free-text column they belong
to (``notices.content``, ``gallery.description``)::

    [TARGETS: 5 - GIRLS, 6 - GIRLS | SEC: A, B] Sports day moved to Friday.

Text without a marker, or with a marker that cannot be parsed, is treated as
a global announcement visible to everyone.
"""
from collections import namedtuple

MARKER_OPEN = "[TARGETS:"
SECTION_LABEL = "SEC:"
LIST_SEPARATOR = ", "

Audience = namedtuple("Audience", ["classes", "sections", "remainder"])


def encode(classes, sections) -> str:
    classes = list(classes)
    if not classes:
        raise ValueError("at least one target class is required")
    return "[TARGETS: {} | SEC: {}]".format(
        LIST_SEPARATOR.join(classes), LIST_SEPARATOR.join(sections or [])
    )


def attach(body: str, classes, sections) -> str:
    """Prefix ``body`` with the encoded audience marker."""
    return encode(classes, sections) + " " + (body or "")


def _split_tokens(raw):
    return [token.strip() for token in raw.split(",") if token.strip()]


def _parse_marker(text):
    # Returns (classes, sections, rest) or None when the marker is malformed.
    if not text.startswith(MARKER_OPEN):
        return None
    close = text.find("]")
    if close == -1:
        return None
    inner = text[len(MARKER_OPEN):close]
    targets, sep, section_part = inner.partition("|")
    if not sep:
        return None
    section_part = section_part.strip()
    if not section_part.upper().startswith(SECTION_LABEL):
        return None
    classes = _split_tokens(targets)
    if not classes:
        return None
    sections = _split_tokens(section_part[len(SECTION_LABEL):])
    return classes, sections, text[close + 1:].lstrip()


def decode(body) -> Audience:
    """Split stored text into its audience and the human-authored remainder.

    Never raises. ``classes`` and ``sections`` are ``None`` when the text
    carries no usable marker. Consecutive leading markers are all stripped
    so that decoding a remainder is always a no-op.
    """
    if not isinstance(body, str):
        return Audience(None, None, body)
    parsed = _parse_marker(body)
    if parsed is None:
        return Audience(None, None, body)
    classes, sections, remainder = parsed
    nested = _parse_marker(remainder)
    while nested is not None:
        remainder = nested[2]
        nested = _parse_marker(remainder)
    return Audience(classes, sections, remainder)


def strip(body):
    """Return only the displayable text of ``body``."""
    return decode(body).remainder


def _contains(values, needle):
    # Substring match over the joined list, mirroring the way the notice
    # board has always filtered: class "1" also matches "10", "11" and "12".
    return needle.upper() in LIST_SEPARATOR.join(values).upper()


def is_visible_to(audience, viewer_class, viewer_section) -> bool:
    if audience is None or audience.classes is None:
        return True
    if not viewer_class or not _contains(audience.classes, viewer_class):
        return False
    if not audience.sections:
        return True
    return bool(viewer_section) and _contains(audience.sections, viewer_section)


def describe(audience) -> str:
    if audience is None or audience.classes is None:
        return "Global"
    label = LIST_SEPARATOR.join(audience.classes)
    if audience.sections:
        label += " ({})".format(LIST_SEPARATOR.join(audience.sections))
    return label


def filter_for_viewer(items, text_of, role, viewer_class=None, viewer_section=None):
    """Yield the items a viewer may see.

    Only students are filtered; every other role sees all items. ``text_of``
    extracts the marker-carrying text from an item.
    """
    for item in items:
        if role != "student":
            yield item
            continue
        if is_visible_to(decode(text_of(item)), viewer_class, viewer_section):
            yield item
