"""
Tests for voicedesc.services.pipeline.analysis.parsing
"""

import pytest

from voicedesc.services.pipeline.analysis.parsing import (
    extract_largest_json_object,
    parse_analysis_text,
    parse_frame_analysis,
    parse_json_response,
    prose_confidence,
)


class TestJsonExtraction:
    def test_largest_object_wins(self):
        text = 'a {"x": 1} b {"description": "long one", "n": 2} c'

        assert extract_largest_json_object(text) == '{"description": "long one", "n": 2}'

    def test_braces_inside_strings_ignored(self):
        text = 'prefix {"description": "a } tricky { value"} suffix'

        assert extract_largest_json_object(text) == '{"description": "a } tricky { value"}'

    def test_no_object(self):
        assert extract_largest_json_object("no json here") is None

    def test_code_fences(self):
        text = '```json\n{"description": "A dog."}\n```'

        assert parse_json_response(text) == {"description": "A dog."}

    def test_chatter_around_object(self):
        assert parse_json_response('Sure! {"a": 1} Hope this helps.') == {"a": 1}

    def test_non_object_json(self):
        assert parse_json_response("[1, 2, 3]") is None


class TestProseParsing:
    """Keyword heuristics for models that answer in prose"""

    def test_extracts_elements_actions_and_context(self):
        text = "The scene shows a red car, parked. A man is walking and talking."

        fields = parse_frame_analysis(text)

        assert fields["visual_elements"] == ["a red car"]
        assert fields["actions"] == ["walking", "talking"]
        assert fields["context"] == "The scene shows a red car, parked"
        assert fields["description"] == text

    def test_filler_words_are_not_actions(self):
        fields = parse_frame_analysis("A slide showing a chart and displaying numbers while Running.")

        assert fields["actions"] == ["running"]

    def test_confidence_grows_with_length(self):
        assert prose_confidence("short") == pytest.approx(0.70125)
        assert prose_confidence("x" * 2000) == 0.95


class TestParseAnalysisText:
    def test_json_answer(self):
        text = (
            '```json\n{"description": "A dog chases a ball. It is sunny.", '
            '"visual_elements": "dog, ball", "actions": ["running"], "confidence": 1.4}\n```'
        )

        fields = parse_analysis_text(text)

        assert fields["description"] == "A dog chases a ball. It is sunny."
        assert fields["visual_elements"] == ["dog", "ball"]
        assert fields["actions"] == ["running"]
        assert fields["context"] == "A dog chases a ball"
        assert fields["confidence"] == 1.0

    def test_json_without_description_falls_back_to_prose(self):
        fields = parse_analysis_text('{"foo": "bar"}')

        assert fields["description"] == '{"foo": "bar"}'

    def test_bad_confidence_uses_length_heuristic(self):
        fields = parse_analysis_text('{"description": "A cat.", "confidence": "high"}')

        assert fields["confidence"] == pytest.approx(prose_confidence("A cat."))
