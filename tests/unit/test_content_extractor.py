"""
Unit tests for step content extraction.

Content arrives as JSON text, bytes or parsed trees, with loosely-cased keys.
"""

import json

import pytest

from questline.modules.quest.content_extractor import (
    ActivityInfo,
    count_activities,
    extract_activities,
    find_activity,
    normalize_content,
)


SAMPLE = {
    "activities": [
        {
            "activityId": "a1",
            "type": "Reading",
            "skillId": "skill-1",
            "payload": {"experiencePoints": 10, "title": "Intro"},
        },
        {
            "activityId": "a2",
            "type": "Quiz",
            "payload": {"experiencePoints": "15", "topic": "Loops"},
        },
    ]
}


@pytest.mark.unit
class TestNormalizeContent:
    """Single normalization entry point."""

    @pytest.mark.parametrize("value", [None, "", "   ", b"", {}, []])
    def test_empty_values_yield_none(self, value):
        assert normalize_content(value) is None

    def test_json_string_is_parsed(self):
        assert normalize_content(json.dumps(SAMPLE)) == SAMPLE

    def test_bytes_are_decoded_and_parsed(self):
        assert normalize_content(json.dumps(SAMPLE).encode("utf-8")) == SAMPLE

    def test_mapping_is_used_as_is(self):
        assert normalize_content(SAMPLE) is SAMPLE

    @pytest.mark.parametrize("value", ["{not json", "<html>", b"\xff\xfe", 42, 3.5, object()])
    def test_unparsable_or_unsupported_yields_none(self, value):
        assert normalize_content(value) is None

    def test_json_scalar_yields_none(self):
        assert normalize_content('"just a string"') is None
        assert normalize_content("17") is None


@pytest.mark.unit
class TestExtractActivities:
    """Activity extraction rules."""

    def test_extracts_all_fields(self):
        activities = extract_activities(SAMPLE)

        assert activities == [
            ActivityInfo("a1", "Reading", "skill-1", 10, "Intro"),
            ActivityInfo("a2", "Quiz", None, 15, "Loops"),
        ]

    def test_root_array_is_the_activity_list(self):
        assert [a.activity_id for a in extract_activities(SAMPLE["activities"])] == ["a1", "a2"]

    def test_keys_are_case_insensitive(self):
        content = {
            "ACTIVITIES": [
                {
                    "ActivityId": "x",
                    "TYPE": "quiz",
                    "SKILLID": "s",
                    "Payload": {"ExperiencePoints": 7, "TITLE": "T"},
                }
            ]
        }

        (only,) = extract_activities(content)

        assert only == ActivityInfo("x", "quiz", "s", 7, "T")
        assert only.is_quiz

    @pytest.mark.parametrize(
        "xp, expected",
        [(12, 12), ("12", 12), (12.9, 12), ("12.5", 12), ("lots", 0), (None, 0), (True, 0), ([], 0)],
    )
    def test_experience_points_coercion(self, xp, expected):
        content = [{"activityId": "a", "payload": {"experiencePoints": xp}}]
        assert extract_activities(content)[0].experience_points == expected

    def test_entries_without_id_are_skipped(self):
        content = [{"type": "Reading"}, "garbage", 5, {"activityId": "ok"}]
        assert [a.activity_id for a in extract_activities(content)] == ["ok"]

    def test_missing_payload_defaults(self):
        (only,) = extract_activities([{"activityId": "a"}])
        assert only.experience_points == 0
        assert only.title is None
        assert only.type == ""

    def test_skill_id_falls_back_to_payload(self):
        content = [{"activityId": "a", "payload": {"skillId": "payload-skill"}}]
        assert extract_activities(content)[0].skill_id == "payload-skill"

    def test_activities_field_not_a_list(self):
        assert extract_activities({"activities": "nope"}) == []
        assert extract_activities({"other": []}) == []


@pytest.mark.unit
class TestCountAndFind:
    def test_count_matches_extraction(self):
        assert count_activities(SAMPLE) == 2
        assert count_activities(json.dumps(SAMPLE)) == 2

    def test_unparsable_string_counts_zero(self):
        assert count_activities("this is {not json") == 0

    def test_find_is_case_insensitive(self):
        found = find_activity(SAMPLE, "A2")
        assert found is not None
        assert found.activity_id == "a2"

    def test_find_unknown_returns_none(self):
        assert find_activity(SAMPLE, "zzz") is None
        assert find_activity(None, "a1") is None
