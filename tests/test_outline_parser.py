"""Tests for the layered outline parser."""

import json

import pytest

from models.enums import ParseTag
from tools.outline_parser import (
    extract_balanced,
    format_scenes,
    group_evenly,
    has_structure,
    recover_fields,
    split_on_headers,
    strip_fences,
    within_bounds,
)


class TestCleaning:
    def test_strip_fences(self):
        assert strip_fences('```json\n[1, 2]\n```').strip() == "[1, 2]"

    def test_has_structure(self):
        assert has_structure('[{"scene_beat": "x"}]')
        assert has_structure('"summary": "x"')
        assert not has_structure("The hero [finally] wins.")

    def test_extract_balanced_skips_brackets_in_strings(self):
        text = 'noise [{"scene_beat": "a ] tricky } beat"}] trailing'
        assert extract_balanced(text) == '[{"scene_beat": "a ] tricky } beat"}]'

    def test_extract_balanced_truncated_returns_tail(self):
        assert extract_balanced('x [{"a": 1') == '[{"a": 1'

    def test_extract_balanced_none_without_brackets(self):
        assert extract_balanced("plain") is None


class TestStructured:
    def test_list_of_objects(self):
        raw = json.dumps([{"scene_number": i, "scene_beat": f"Beat {i}"} for i in range(1, 5)])
        result = format_scenes(raw)
        assert result.tag == ParseTag.PARSED
        assert result.beats == ["Beat 1", "Beat 2", "Beat 3", "Beat 4"]

    def test_wrapped_under_scenes_key(self):
        raw = json.dumps({"scenes": [{"scene_beat": "A"}, {"scene_beat": "B"}]})
        assert format_scenes(raw).beats == ["A", "B"]

    def test_list_of_strings(self):
        assert format_scenes('["A", "B", "C"]').beats == ["A", "B", "C"]

    def test_fenced_with_prose_around(self):
        raw = 'Here is your outline:\n```json\n[{"scene_beat": "A"}, {"scene_beat": "B"}]\n```\nEnjoy!'
        result = format_scenes(raw)
        assert result.tag == ParseTag.PARSED
        assert result.beats == ["A", "B"]

    def test_raw_newlines_in_strings_tolerated(self):
        raw = '[{"scene_beat": "line one\nline two"}, {"scene_beat": "B"}]'
        assert format_scenes(raw).beats == ["line one\nline two", "B"]

    def test_bracketed_aside_before_array(self):
        beats = ["Mara finds the door.", "The tide follows.", "The keeper arrives.", "The door closes."]
        raw = f"Here is the outline [4 chapters, as requested]:\n```json\n{json.dumps(beats)}\n```"
        result = format_scenes(raw, 4)
        assert result.tag == ParseTag.PARSED
        assert result.beats == beats

    def test_beatless_object_before_array(self):
        raw = '{"note": "draft"} then [{"scene_beat": "A"}, {"scene_beat": "B"}]'
        assert format_scenes(raw).beats == ["A", "B"]

    def test_extract_balanced_from_offset(self):
        text = "[aside] and [1, 2]"
        assert extract_balanced(text, 1) == "[1, 2]"

    def test_blank_beats_dropped(self):
        raw = json.dumps([{"scene_beat": "  "}, {"scene_beat": " A "}])
        assert format_scenes(raw).beats == ["A"]


class TestFieldRecovery:
    def test_trailing_comma_recovered(self):
        raw = '[{"scene_beat": "A",}, {"scene_beat": "B \\"quoted\\"",},]'
        result = format_scenes(raw)
        assert result.tag == ParseTag.FIELD_RECOVERED
        assert result.beats == ["A", 'B "quoted"']

    def test_unterminated_value(self):
        raw = '[\n  {"scene_beat": "First beat"},\n  {"scene_beat": "Second beat that was cut'
        result = format_scenes(raw)
        assert result.tag == ParseTag.FIELD_RECOVERED
        assert result.beats == ["First beat", "Second beat that was cut"]

    def test_recover_fields_empty_when_nothing_found(self):
        assert recover_fields('{"other": 1') == []


class TestPlainText:
    def test_chapter_headers(self):
        raw = "Chapter 1: Arrival\nMara lands.\n\nChapter 2: Storm\nThe sea rises.\n\nChapter 3\nCalm."
        result = format_scenes(raw)
        assert result.tag == ParseTag.HEURISTIC_SEGMENTED
        assert result.beats == ["Arrival\nMara lands.", "Storm\nThe sea rises.", "Calm."]

    def test_single_header_not_enough(self):
        assert split_on_headers("Chapter 1\nOnly one.") == []

    def test_paragraphs_grouped_to_target(self):
        raw = "\n\n".join(f"Paragraph {i}." for i in range(1, 7))
        result = format_scenes(raw, target=3)
        assert result.tag == ParseTag.HEURISTIC_SEGMENTED
        assert result.beats == [
            "Paragraph 1.\n\nParagraph 2.",
            "Paragraph 3.\n\nParagraph 4.",
            "Paragraph 5.\n\nParagraph 6.",
        ]

    def test_sentences_grouped(self):
        result = format_scenes("One. Two! Three? Four.", target=2)
        assert result.beats == ["One. Two!", "Three? Four."]

    def test_single_sentence_whole_text(self):
        result = format_scenes("  A lone idea  ")
        assert result.tag == ParseTag.HEURISTIC_SEGMENTED
        assert result.beats == ["A lone idea"]

    @pytest.mark.parametrize("raw", ["", "   ", "```\n```", None])
    def test_empty_fails(self, raw):
        result = format_scenes(raw)
        assert result.tag == ParseTag.FAILED
        assert not result.ok
        assert result.count == 0


class TestHelpers:
    def test_group_evenly_spreads_remainder_first(self):
        assert group_evenly(list("abcde"), 2) == [["a", "b", "c"], ["d", "e"]]

    def test_group_evenly_target_larger_than_items(self):
        assert group_evenly(["a", "b"], 5) == [["a"], ["b"]]

    def test_within_bounds(self):
        assert within_bounds(["a"] * 4, 4, 6)
        assert not within_bounds(["a"] * 3, 4, 6)
        assert not within_bounds(["a"] * 7, 4, 6)
