import pytest

from dashcam_remote.core.commands import (
    Help,
    Photo,
    Record,
    Status,
    Unrecognized,
    normalize,
    parse_command,
    parse_record_duration,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("/record", Record(60)),
        ("/record 30", Record(30)),
        ("/record 999", Record(600)),
        ("/record 2", Record(5)),
        ("录制", Record(60)),
        ("录制30", Record(30)),
        ("录制 45", Record(45)),
        ("RECORD 45", Record(45)),
        ("record", Record(60)),
        ("/Record 600", Record(600)),
        ("/record abc", Record(60)),
        ("/record -3", Record(5)),
        ("/record 1.5", Record(60)),
    ],
)
def test_record_durations(text: str, expected: Record) -> None:
    assert parse_command(text) == expected


@pytest.mark.parametrize("text", ["/photo", "拍照", "photo", "PHOTO", "  /photo  "])
def test_photo(text: str) -> None:
    assert parse_command(text) == Photo()


@pytest.mark.parametrize("text", ["/help", "/start", "帮助", "/HELP"])
def test_help(text: str) -> None:
    assert parse_command(text) == Help()


@pytest.mark.parametrize("text", ["/status", "状态"])
def test_status(text: str) -> None:
    assert parse_command(text) == Status()


def test_unrecognized_keeps_normalized_text() -> None:
    assert parse_command("hello") == Unrecognized("hello")
    assert parse_command("  hi @dashcam_bot ") == Unrecognized("hi")


def test_photo_must_match_exactly() -> None:
    assert parse_command("/photo now") == Unrecognized("/photo now")
    assert parse_command("拍照片") == Unrecognized("拍照片")


def test_bot_mention_is_stripped() -> None:
    assert parse_command("/record@dashcam_bot 20") == Record(20)
    assert parse_command("@dashcam_bot /photo") == Photo()
    assert normalize("/status@dashcam_bot") == "/status"


def test_empty_text_is_unrecognized() -> None:
    assert parse_command("") == Unrecognized("")
    assert parse_command("   ") == Unrecognized("")


def test_duration_bounds() -> None:
    assert parse_record_duration("") == 60
    assert parse_record_duration(" 5 ") == 5
    assert parse_record_duration("4") == 5
    assert parse_record_duration("601") == 600
    assert parse_record_duration("1_000") == 60
