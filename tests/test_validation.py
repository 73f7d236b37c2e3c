from types import SimpleNamespace

import pytest

from editor.errors import ValidationError
from editor.operations import Convert, Cut, Overlay, OverlayPosition, Resize
from editor.validation import validate_chain


def _video(duration=60.0, fmt="mp4"):
    return SimpleNamespace(kind="video", container_format=fmt, duration_seconds=duration)


def _image(fmt="png"):
    return SimpleNamespace(kind="image", container_format=fmt, duration_seconds=None)


def _op(type_, **parameters):
    return {"type": type_, "parameters": parameters}


def _errors(asset, ops):
    with pytest.raises(ValidationError) as exc:
        validate_chain(asset, ops)
    return exc.value.as_list()


def test_valid_chain_becomes_typed_specs_in_order():
    specs = validate_chain(
        _video(),
        [
            _op("cut", start_time="00:00:05", end_time="00:00:10"),
            _op("resize", width=1280, height=720),
            _op("convert", output_format="MOV"),
            _op("overlay", text="Hello World", position="bottom-right"),
        ],
    )

    assert specs == [
        Cut(start="00:00:05", end="00:00:10"),
        Resize(width=1280, height=720),
        Convert(target_format="mov"),
        Overlay(text="Hello World", position=OverlayPosition.BOTTOM_RIGHT, font_size=24),
    ]


def test_zero_resolution_is_rejected():
    errors = _errors(_video(), [_op("resize", width=0, height=0)])
    assert errors == [
        {"index": 0, "operation": "resize", "field": "resolution", "message": "0x0: width and height must be positive"}
    ]


def test_resolution_outside_whitelist_is_rejected():
    errors = _errors(_video(), [_op("resize", width=1000, height=500)])
    assert errors[0]["field"] == "resolution"
    assert "not supported" in errors[0]["message"]


def test_every_error_is_collected_with_its_index():
    errors = _errors(
        _video(),
        [
            _op("resize", width=1280, height=720),
            _op("convert", output_format="gif"),
            _op("overlay", text="ok", position="middle", font_size=500),
            {"type": "blur", "parameters": {}},
        ],
    )

    assert [(e["index"], e["operation"], e["field"]) for e in errors] == [
        (1, "convert", "output_format"),
        (2, "overlay", "position"),
        (2, "overlay", "font_size"),
        (3, "blur", "type"),
    ]


def test_empty_chain_is_rejected():
    errors = _errors(_video(), [])
    assert errors[0]["index"] == -1


def test_missing_parameters():
    errors = _errors(_video(), [{"type": "resize"}, _op("cut")])
    assert (errors[0]["index"], errors[0]["field"]) == (0, "parameters")
    assert {e["field"] for e in errors[1:]} == {"start_time", "end_time"}


def test_cut_is_video_only():
    errors = _errors(_image(), [_op("cut", start_time="00:00:01", end_time="00:00:02")])
    assert errors[0]["field"] == "type"


@pytest.mark.parametrize(
    "start,end,field",
    [
        ("00:00:10", "00:00:05", "start_time"),
        ("00:00:05", "00:00:05", "end_time"),
        ("5", "00:00:10", "start_time"),
        ("00:00:05", "00:02:00", "end_time"),
    ],
)
def test_cut_time_range(start, end, field):
    errors = _errors(_video(), [_op("cut", start_time=start, end_time=end)])
    assert errors[0]["field"] == field


def test_second_cut_is_bounded_by_the_first():
    errors = _errors(
        _video(),
        [
            _op("cut", start_time="00:00:05", end_time="00:00:10"),
            _op("cut", start_time="00:00:00", end_time="00:00:08"),
        ],
    )
    assert (errors[0]["index"], errors[0]["field"]) == (1, "end_time")


def test_convert_stays_within_media_kind():
    errors = _errors(_image(), [_op("convert", output_format="mp4")])
    assert errors[0]["field"] == "output_format"
    assert validate_chain(_image(), [_op("convert", output_format="webp")]) == [Convert(target_format="webp")]


@pytest.mark.parametrize("text", ["", "Hi!", "x" * 256, "under_score"])
def test_overlay_text_rules(text):
    errors = _errors(_video(), [_op("overlay", text=text, position="center")])
    assert errors[0]["field"] == "text"


def test_overlay_font_size_accepts_numeric_strings():
    specs = validate_chain(_image(), [_op("overlay", text="Sale 50", position="top-left", font_size="36")])
    assert specs[0].font_size == 36


def test_validation_error_message_mentions_each_problem():
    with pytest.raises(ValidationError) as exc:
        validate_chain(_video(), [_op("resize", width=0, height=0), _op("convert", output_format="gif")])
    assert "#0 resize.resolution" in str(exc.value)
    assert "#1 convert.output_format" in str(exc.value)
