"""
Media transform engine: one blocking call per stage.

Video goes through an ffmpeg subprocess bounded by TRANSFORM_TIMEOUT_SECONDS
(the child is killed when it overruns); still images go through Pillow.
The engine never raises for a failed transform, it reports it in the result.
"""
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from django.conf import settings
from PIL import Image, ImageDraw, ImageFont

from .operations import (
    IMAGE_FORMATS,
    Convert,
    Cut,
    OperationSpec,
    Overlay,
    OverlayPosition,
    Resize,
)

logger = logging.getLogger(__name__)

_PILLOW_FORMATS = {"jpg": "JPEG", "png": "PNG", "webp": "WEBP"}

# drawtext x/y expressions; tw/th are the rendered text box size.
_DRAWTEXT_POSITIONS = {
    OverlayPosition.TOP_LEFT: "x=10:y=10",
    OverlayPosition.TOP_RIGHT: "x=w-tw-10:y=10",
    OverlayPosition.BOTTOM_LEFT: "x=10:y=h-th-10",
    OverlayPosition.BOTTOM_RIGHT: "x=w-tw-10:y=h-th-10",
    OverlayPosition.CENTER: "x=(w-tw)/2:y=(h-th)/2",
}


@dataclass(frozen=True)
class TransformResult:
    success: bool
    output_path: str | None = None
    detail: str = ""


class MediaTransformEngine:
    def __init__(self, scratch_dir=None, *, ffmpeg_binary=None, timeout=None, font_file=None):
        self.scratch_dir = Path(scratch_dir or settings.MEDIA_SCRATCH_DIR)
        self.ffmpeg_binary = ffmpeg_binary or settings.FFMPEG_BINARY
        self.timeout = timeout or settings.TRANSFORM_TIMEOUT_SECONDS
        self.font_file = font_file if font_file is not None else settings.OVERLAY_FONT_FILE

    def transform(self, input_path: str, spec: OperationSpec) -> TransformResult:
        source = Path(input_path)
        if not source.is_file():
            return TransformResult(False, detail=f"input {source} does not exist")

        fmt = spec.target_format if isinstance(spec, Convert) else source.suffix.lstrip(".").lower()
        output = self._output_path(spec, fmt)
        output.parent.mkdir(parents=True, exist_ok=True)

        if source.suffix.lstrip(".").lower() in IMAGE_FORMATS:
            return self._transform_image(source, output, spec)
        return self._run_ffmpeg(self._ffmpeg_command(source, output, spec), output)

    def _output_path(self, spec: OperationSpec, fmt: str) -> Path:
        return self.scratch_dir / f"stage_{uuid4().hex[:16]}_{spec.kind.value}.{fmt}"

    # -- video ------------------------------------------------------------

    def _ffmpeg_command(self, source: Path, output: Path, spec: OperationSpec) -> list[str]:
        cmd = [self.ffmpeg_binary, "-y", "-i", str(source)]
        if isinstance(spec, Cut):
            cmd += ["-ss", spec.start, "-to", spec.end]
        elif isinstance(spec, Resize):
            cmd += ["-vf", f"scale={spec.width}:{spec.height}"]
        elif isinstance(spec, Overlay):
            cmd += ["-vf", self._drawtext(spec)]
        elif isinstance(spec, Convert):
            pass  # container change is driven by the output extension
        else:
            raise TypeError(f"unsupported operation spec: {spec!r}")
        cmd += [
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "aac",
            "-b:a", "128k",
            "-map_metadata", "0",
        ]
        if output.suffix in (".mp4", ".mov"):
            cmd += ["-movflags", "+faststart"]
        cmd.append(str(output))
        return cmd

    def _drawtext(self, spec: Overlay) -> str:
        parts = [f"text='{spec.text}'", f"fontsize={spec.font_size}"]
        if self.font_file:
            parts.insert(0, f"fontfile='{self.font_file}'")
        parts += [
            "fontcolor=white",
            "box=1",
            "boxcolor=black@0.5",
            "boxborderw=5",
            _DRAWTEXT_POSITIONS[spec.position],
        ]
        return "drawtext=" + ":".join(parts)

    def _run_ffmpeg(self, cmd: list[str], output: Path) -> TransformResult:
        logger.info("transform_started", extra={"command": " ".join(cmd)})
        try:
            subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            # subprocess.run kills the child before re-raising
            logger.error("transform_timed_out", extra={"timeout_seconds": self.timeout, "output": str(output)})
            output.unlink(missing_ok=True)
            return TransformResult(False, detail=f"ffmpeg exceeded {self.timeout}s")
        except subprocess.CalledProcessError as e:
            err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
            logger.error("transform_failed", extra={"returncode": e.returncode, "stderr": err[-4000:]})
            output.unlink(missing_ok=True)
            return TransformResult(False, detail=err[-4000:])
        except OSError as e:
            logger.error("transform_not_started", extra={"error": str(e)})
            return TransformResult(False, detail=str(e))
        return TransformResult(True, output_path=str(output))

    # -- images -----------------------------------------------------------

    def _transform_image(self, source: Path, output: Path, spec: OperationSpec) -> TransformResult:
        if isinstance(spec, Cut):
            return TransformResult(False, detail="cut is not applicable to still images")
        try:
            img = Image.open(source)
            if isinstance(spec, Resize):
                img = img.resize((spec.width, spec.height))
            elif isinstance(spec, Overlay):
                img = self._draw_overlay(img, spec)
            elif not isinstance(spec, Convert):
                raise TypeError(f"unsupported operation spec: {spec!r}")

            pil_format = _PILLOW_FORMATS[output.suffix.lstrip(".").lower()]
            if pil_format == "JPEG":
                img = img.convert("RGB")
            img.save(output, format=pil_format)
        except (OSError, KeyError, ValueError) as e:
            logger.error("image_transform_failed", extra={"source": str(source), "error": str(e)})
            output.unlink(missing_ok=True)
            return TransformResult(False, detail=str(e))
        return TransformResult(True, output_path=str(output))

    def _draw_overlay(self, img: Image.Image, spec: Overlay) -> Image.Image:
        base = img.convert("RGBA")
        w, h = base.size
        layer = Image.new("RGBA", base.size, (255, 255, 255, 0))
        draw = ImageDraw.Draw(layer)

        if self.font_file:
            font = ImageFont.truetype(self.font_file, spec.font_size)
        else:
            font = ImageFont.load_default(size=spec.font_size)

        bbox = draw.textbbox((0, 0), spec.text, font=font)
        tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
        pad = 10
        pos = {
            OverlayPosition.TOP_LEFT: (pad, pad),
            OverlayPosition.TOP_RIGHT: (w - tw - pad, pad),
            OverlayPosition.BOTTOM_LEFT: (pad, h - th - pad),
            OverlayPosition.BOTTOM_RIGHT: (w - tw - pad, h - th - pad),
            OverlayPosition.CENTER: ((w - tw) // 2, (h - th) // 2),
        }[spec.position]

        draw.rectangle((pos[0] - 5, pos[1] - 5, pos[0] + tw + 5, pos[1] + th + 5), fill=(0, 0, 0, 128))
        draw.text(pos, spec.text, fill=(255, 255, 255, 255), font=font)
        return Image.alpha_composite(base, layer)
