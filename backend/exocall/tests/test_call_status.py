from types import SimpleNamespace

import pytest

from exocall.services.call_status import classify_record, map_call_status, parse_duration


@pytest.mark.parametrize(
    "status,category",
    [
        ("no-answer", "abandoned"),
        ("No_Answer", "abandoned"),
        ("busy", "failed"),
        ("failed", "failed"),
        ("cancelled", "abandoned"),
        ("ringing", "in_progress"),
        ("in_progress", "in_progress"),
        ("queued", "in_progress"),
    ],
)
def test_direct_statuses(status, category):
    assert map_call_status(status).category == category


def test_recording_means_success_even_for_short_calls():
    info = map_call_status("completed", recording_url="https://rec.example.test/a.mp3", duration=5)
    assert info.category == "success"
    assert info.display_status == "completed"


def test_machine_answer_is_voicemail():
    info = map_call_status("completed", answered_by="machine", duration=120)
    assert info.display_status == "voicemail"
    assert info.category == "abandoned"


def test_short_unrecorded_call_is_missed():
    info = map_call_status("completed", duration=59)
    assert info.display_status == "missed"
    assert info.category == "abandoned"


def test_long_unrecorded_call_is_success():
    info = map_call_status("completed", duration=60)
    assert info.display_status == "completed-unrecorded"
    assert info.category == "success"


def test_completed_without_evidence_is_unknown():
    assert map_call_status("completed").category == "unknown"


def test_unrecognized_status():
    info = map_call_status("weird")
    assert info.display_status == "weird"
    assert info.category == "unknown"
    assert map_call_status(None).display_status == "unknown"


@pytest.mark.parametrize(
    "raw,expected",
    [("42", 42), ("61.9", 61), (" 7 ", 7), ("", None), ("null", None), ("abc", None), (None, None), ("inf", None)],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


def test_classify_record_reads_stored_strings():
    record = SimpleNamespace(status="completed", answered_by=None, recording_url=None, duration="30")
    assert classify_record(record).display_status == "missed"
