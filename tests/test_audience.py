
import unittest
import sys
import os

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schooladmin import audience

class EncodeTests(unittest.TestCase):

    def test_wire_format(self):
        self.assertEqual(
            audience.encode(['5 - GIRLS', '6 - GIRLS'], ['A', 'B']),
            '[TARGETS: 5 - GIRLS, 6 - GIRLS | SEC: A, B]',
        )

    def test_attach_puts_one_space_before_body(self):
        self.assertEqual(
            audience.attach('Sports day on Friday.', ['7 - BOYS'], ['C']),
            '[TARGETS: 7 - BOYS | SEC: C] Sports day on Friday.',
        )

    def test_empty_sections_allowed(self):
        self.assertEqual(audience.encode(['9 - BOYS'], []), '[TARGETS: 9 - BOYS | SEC: ]')

    def test_empty_classes_rejected(self):
        with self.assertRaises(ValueError):
            audience.encode([], ['A'])

class DecodeTests(unittest.TestCase):

    def test_round_trip(self):
        cases = [
            (['5 - GIRLS'], ['A', 'B']),
            (['1 - BOYS', '2 - BOYS', '3 - BOYS'], ['A']),
            (['NURSERY'], []),
        ]
        for classes, sections in cases:
            decoded = audience.decode(audience.attach('body', classes, sections))
            self.assertEqual(set(decoded.classes), set(classes))
            self.assertEqual(set(decoded.sections), set(sections))
            self.assertEqual(decoded.remainder, 'body')

    def test_plain_text_is_global(self):
        decoded = audience.decode('plain text with no marker')
        self.assertIsNone(decoded.classes)
        self.assertIsNone(decoded.sections)
        self.assertEqual(decoded.remainder, 'plain text with no marker')

    def test_remainder_leading_whitespace_trimmed(self):
        decoded = audience.decode('[TARGETS: 5 - GIRLS | SEC: A]    hello  ')
        self.assertEqual(decoded.remainder, 'hello  ')

    def test_decoder_does_not_assume_case(self):
        decoded = audience.decode('[TARGETS: 5 - girls | sec: a] hi')
        self.assertEqual(decoded.classes, ['5 - girls'])
        self.assertEqual(decoded.sections, ['a'])

    def test_malformed_markers_fail_soft(self):
        for body in (
            '[TARGETS: 5 - GIRLS | SEC: A no closing bracket',
            '[TARGETS: 5 - GIRLS] missing section label',
            '[TARGETS: 5 - GIRLS | A, B] label absent',
            '[TARGETS:  | SEC: A] no classes',
            '',
        ):
            decoded = audience.decode(body)
            self.assertIsNone(decoded.classes, body)
            self.assertEqual(decoded.remainder, body)

    def test_non_string_body(self):
        self.assertEqual(audience.decode(None), (None, None, None))

    def test_decode_is_idempotent(self):
        samples = [
            'plain',
            '[TARGETS: 5 - GIRLS | SEC: A] body',
            '[TARGETS: 5 - GIRLS | SEC: A] [TARGETS: 6 - GIRLS | SEC: B] double marked',
            '[TARGETS: broken',
            '   leading spaces',
        ]
        for x in samples:
            once = audience.decode(x).remainder
            self.assertEqual(audience.decode(once).remainder, once, x)

    def test_strip(self):
        self.assertEqual(audience.strip('[TARGETS: 5 - GIRLS | SEC: A] Exams'), 'Exams')
        self.assertEqual(audience.strip('Exams'), 'Exams')

class VisibilityTests(unittest.TestCase):

    def test_global_visible_to_everyone(self):
        self.assertTrue(audience.is_visible_to(None, '5 - GIRLS', 'A'))
        self.assertTrue(audience.is_visible_to(None, None, None))
        self.assertTrue(audience.is_visible_to(audience.decode('no marker'), '9 - BOYS', 'D'))

    def test_targeted_literal_scenario(self):
        decoded = audience.decode(audience.encode(['5 - GIRLS'], ['A', 'B']))
        self.assertTrue(audience.is_visible_to(decoded, '5 - GIRLS', 'A'))
        self.assertFalse(audience.is_visible_to(decoded, '6 - GIRLS', 'A'))

    def test_section_must_match(self):
        decoded = audience.decode(audience.encode(['5 - GIRLS'], ['A', 'B']))
        self.assertFalse(audience.is_visible_to(decoded, '5 - GIRLS', 'C'))
        self.assertFalse(audience.is_visible_to(decoded, '5 - GIRLS', None))

    def test_matching_is_case_insensitive(self):
        decoded = audience.decode(audience.encode(['5 - GIRLS'], ['A']))
        self.assertTrue(audience.is_visible_to(decoded, '5 - girls', 'a'))

    def test_substring_looseness_is_preserved(self):
        # Class "1" is contained in "10 - BOYS", so it matches.
        decoded = audience.decode(audience.encode(['10 - BOYS'], ['A']))
        self.assertTrue(audience.is_visible_to(decoded, '1', 'A'))

    def test_targeted_hidden_from_viewer_without_class(self):
        decoded = audience.decode(audience.encode(['5 - GIRLS'], ['A']))
        self.assertFalse(audience.is_visible_to(decoded, None, 'A'))

    def test_no_sections_means_any_section(self):
        decoded = audience.decode(audience.encode(['5 - GIRLS'], []))
        self.assertTrue(audience.is_visible_to(decoded, '5 - GIRLS', 'D'))
        self.assertTrue(audience.is_visible_to(decoded, '5 - GIRLS', None))

    def test_describe(self):
        self.assertEqual(audience.describe(None), 'Global')
        self.assertEqual(audience.describe(audience.decode('[TARGETS: 5 - GIRLS | SEC: A, B] x')), '5 - GIRLS (A, B)')

    def test_filter_for_viewer_only_filters_students(self):
        items = [
            {'id': 1, 'text': 'everyone'},
            {'id': 2, 'text': audience.attach('fifth', ['5 - GIRLS'], ['A'])},
            {'id': 3, 'text': audience.attach('sixth', ['6 - GIRLS'], ['A'])},
        ]
        seen = audience.filter_for_viewer(items, lambda i: i['text'], 'student', '5 - GIRLS', 'A')
        self.assertEqual([i['id'] for i in seen], [1, 2])
        seen = audience.filter_for_viewer(items, lambda i: i['text'], 'teacher')
        self.assertEqual([i['id'] for i in seen], [1, 2, 3])

if __name__ == "__main__":
    unittest.main()
