import subprocess
from pathlib import Path

from PIL import Image

from editor.engine import MediaTransformEngine
from editor.operations import Convert, Cut, Overlay, OverlayPosition, Resize

from .fakes import write_png


def _engine(scratch_dir, **kwargs):
    kwargs.setdefault("ffmpeg_binary", "ffmpeg")
    kwargs.setdefault("timeout", 5)
    kwargs.setdefault("font_file", "")
    return MediaTransformEngine(scratch_dir, **kwargs)


def test_image_resize(tmp_path, scratch_dir):
    src = write_png(tmp_path / "in.png", size=(640, 480))

    result = _engine(scratch_dir).transform(str(src), Resize(width=600, height=600))

    assert result.success
    out = Path(result.output_path)
    assert out.parent == scratch_dir
    assert out.name.endswith("_resize.png")
    with Image.open(out) as img:
        assert img.size == (600, 600)


def test_image_convert_changes_extension_and_format(tmp_path, scratch_dir):
    src = write_png(tmp_path / "in.png")

    result = _engine(scratch_dir).transform(str(src), Convert(target_format="jpg"))

    assert result.success and result.output_path.endswith(".jpg")
    with Image.open(result.output_path) as img:
        assert img.format == "JPEG"


def test_image_overlay_keeps_size(tmp_path, scratch_dir):
    src = write_png(tmp_path / "in.png", size=(320, 200))

    result = _engine(scratch_dir).transform(
        str(src), Overlay(text="Hello", position=OverlayPosition.CENTER, font_size=20)
    )

    assert result.success
    with Image.open(result.output_path) as img:
        assert img.size == (320, 200)


def test_cut_on_image_fails(tmp_path, scratch_dir):
    src = write_png(tmp_path / "in.png")
    result = _engine(scratch_dir).transform(str(src), Cut(start="00:00:01", end="00:00:02"))
    assert not result.success
    assert list(scratch_dir.iterdir()) == []


def test_missing_input_fails(scratch_dir):
    result = _engine(scratch_dir).transform(str(scratch_dir / "nope.mp4"), Resize(1280, 720))
    assert not result.success
    assert "does not exist" in result.detail


def _video(tmp_path) -> Path:
    src = tmp_path / "in.mp4"
    src.write_bytes(b"fake-video")
    return src


def test_video_cut_command(monkeypatch, tmp_path, scratch_dir):
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen["timeout"] = kwargs.get("timeout")
        Path(cmd[-1]).write_bytes(b"out")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = _engine(scratch_dir, timeout=42).transform(str(_video(tmp_path)), Cut(start="00:00:05", end="00:00:10"))

    assert result.success
    cmd = seen["cmd"]
    assert cmd[:4] == ["ffmpeg", "-y", "-i", str(tmp_path / "in.mp4")]
    assert cmd[cmd.index("-ss") + 1] == "00:00:05"
    assert cmd[cmd.index("-to") + 1] == "00:00:10"
    assert "+faststart" in cmd
    assert seen["timeout"] == 42


def test_video_resize_and_convert_command(monkeypatch, tmp_path, scratch_dir):
    cmds = []

    def fake_run(cmd, **kwargs):
        cmds.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(subprocess, "run", fake_run)
    engine = _engine(scratch_dir)
    engine.transform(str(_video(tmp_path)), Resize(width=1280, height=720))
    engine.transform(str(_video(tmp_path)), Convert(target_format="avi"))

    assert "scale=1280:720" in cmds[0]
    assert cmds[1][-1].endswith("_convert.avi")
    assert "+faststart" not in cmds[1]


def test_video_overlay_drawtext(monkeypatch, tmp_path, scratch_dir):
    cmds = []
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: cmds.append(cmd))

    _engine(scratch_dir, font_file="/fonts/Sans.ttf").transform(
        str(_video(tmp_path)), Overlay(text="Hello", position=OverlayPosition.TOP_RIGHT, font_size=30)
    )

    vf = cmds[0][cmds[0].index("-vf") + 1]
    assert vf.startswith("drawtext=fontfile='/fonts/Sans.ttf':text='Hello':fontsize=30")
    assert "x=w-tw-10:y=10" in vf


def test_video_timeout_is_a_failed_stage(monkeypatch, tmp_path, scratch_dir):
    def fake_run(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"partial")
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = _engine(scratch_dir, timeout=3).transform(str(_video(tmp_path)), Resize(1280, 720))

    assert not result.success
    assert "3s" in result.detail
    assert list(scratch_dir.iterdir()) == []


def test_video_ffmpeg_error_reports_stderr(monkeypatch, tmp_path, scratch_dir):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr=b"Invalid data found")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = _engine(scratch_dir).transform(str(_video(tmp_path)), Resize(1280, 720))

    assert not result.success
    assert "Invalid data found" in result.detail


def test_missing_ffmpeg_binary(monkeypatch, tmp_path, scratch_dir):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = _engine(scratch_dir).transform(str(_video(tmp_path)), Resize(1280, 720))
    assert not result.success
