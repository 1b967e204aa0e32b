"""Tests for turning a closed poll into an event change."""

from datetime import timezone

from connectsphere.services.poll_inference import infer_event_update, parse_when


def test_where_question_sets_location():
    assert infer_event_update("Where should we meet?", "Park") == {"location_text": "Park"}


def test_location_keyword_is_case_insensitive():
    assert infer_event_update("LOCATION for dinner", "  Luigi's  ") == {"location_text": "Luigi's"}


def test_when_question_with_parsable_answer_sets_start():
    changes = infer_event_update("When do we start?", "2030-01-15 19:30")
    assert changes["starts_at"].year == 2030
    assert changes["starts_at"].hour == 19
    assert changes["starts_at"].tzinfo == timezone.utc


def test_time_question_with_unparsable_answer_is_no_update():
    assert infer_event_update("What time?", "whenever you like") is None


def test_question_about_both_sets_both():
    changes = infer_event_update("When and where?", "2030-03-01 12:00")
    assert set(changes) == {"starts_at", "location_text"}


def test_unrelated_question_is_no_update():
    assert infer_event_update("Pizza or tacos?", "Tacos") is None


def test_empty_answer_is_no_update():
    assert infer_event_update("Where?", "   ") is None
    assert infer_event_update("Where?", None) is None


def test_parse_when_keeps_explicit_offset():
    parsed = parse_when("2030-05-05T10:00:00+02:00")
    assert parsed.utcoffset().total_seconds() == 7200
