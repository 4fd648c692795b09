"""
Tests for duration parsing, video classification and caption cleaning.
"""
import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from enums import VideoType
from text_processing import (clean_title, clean_transcript, classify_type, detect_topics,
                             format_duration, join_segments, parse_duration)


class TestParseDuration(unittest.TestCase):

    def test_full_duration(self):
        self.assertEqual(parse_duration("PT1H2M3S"), 3723)

    def test_partial_components(self):
        self.assertEqual(parse_duration("PT45S"), 45)
        self.assertEqual(parse_duration("PT10M"), 600)
        self.assertEqual(parse_duration("PT2H"), 7200)

    def test_invalid_returns_zero(self):
        for value in ("", "garbage", "PT", None):
            self.assertEqual(parse_duration(value), 0, value)

    def test_calendar_duration_returns_zero(self):
        self.assertEqual(parse_duration("P1M"), 0)


class TestClassifyType(unittest.TestCase):

    def test_short_by_duration(self):
        self.assertEqual(classify_type(59, "Quick tip", ""), VideoType.SHORT)
        self.assertEqual(classify_type(60, "Quick tip", ""), VideoType.SHORT)

    def test_long_form(self):
        self.assertEqual(classify_type(61, "Full trail report", ""), VideoType.VIDEO)
        self.assertEqual(classify_type(300, "Long vlog", ""), VideoType.VIDEO)

    def test_marker_or_duration(self):
        self.assertEqual(classify_type(30, "My trip", ""), VideoType.SHORT)
        self.assertEqual(classify_type(300, "Check out my #shorts", ""), VideoType.SHORT)

    def test_zero_duration_is_not_short(self):
        self.assertEqual(classify_type(0, "Live stream", ""), VideoType.VIDEO)

    def test_shorts_marker(self):
        self.assertEqual(classify_type(300, "Sunrise #Shorts", ""), VideoType.SHORT)
        self.assertEqual(classify_type(300, "Sunrise", "watch more #short"), VideoType.SHORT)
        self.assertEqual(classify_type(300, "Sunrise #shortstory", ""), VideoType.VIDEO)


class TestCleanTranscript(unittest.TestCase):

    def test_annotations_and_whitespace(self):
        self.assertEqual(clean_transcript("[Music] Hello   there (laughs)"), "Hello there")

    def test_fillers_are_whole_words_only(self):
        self.assertEqual(clean_transcript("um the summit is, err, humming"), "the summit is, humming")

    def test_strips_noise(self):
        raw = "[Music] uh so today we hike ( laughs ) to the summit ♪ la la ♪ ."
        self.assertEqual(clean_transcript(raw), "so today we hike to the summit.")

    def test_sentence_spacing(self):
        self.assertEqual(clean_transcript("Great view.Next stop"), "Great view. Next stop")

    def test_domains_and_abbreviations_keep_their_dots(self):
        for text in ("Route notes are on youtube.com today", "We drove across the U.S.A last fall",
                     "Pack light, e.g.Trail runners"):
            self.assertEqual(clean_transcript(text), text)

    def test_empty(self):
        self.assertEqual(clean_transcript(""), "")
        self.assertEqual(clean_transcript("[Applause]"), "")

    def test_join_segments(self):
        self.assertEqual(join_segments(["  hello", "", "world ", "   "]), "hello world")


class TestHelpers(unittest.TestCase):

    def test_clean_title(self):
        self.assertEqual(clean_title("Summit   Day \U0001F97E"), "Summit Day")
        self.assertEqual(clean_title(""), "")

    def test_format_duration(self):
        self.assertEqual(format_duration(3723), "1 h 02 min 03 s")
        self.assertEqual(format_duration(245), "4 min 05 s")
        self.assertEqual(format_duration(45), "45 s")
        self.assertEqual(format_duration(0), "unknown")

    def test_detect_topics(self):
        self.assertEqual(detect_topics("Summit hike", ""), ["Hiking and trekking"])
        topics = detect_topics("Kayak camping trip", "Our tent and paddle setup")
        self.assertIn("Camping", topics)
        self.assertIn("Paddling", topics)
        self.assertEqual(detect_topics("", ""), [])


if __name__ == '__main__':
    unittest.main()
