"""Typed operation specs. A chain is a list of these, executed in order."""
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import ClassVar, Union


class OperationKind(str, Enum):
    CUT = "cut"
    RESIZE = "resize"
    CONVERT = "convert"
    OVERLAY = "overlay"


class OverlayPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


SUPPORTED_RESOLUTIONS = frozenset({
    (1280, 720),
    (1920, 1080),
    (720, 1280),
    (1080, 1920),
    (600, 600),
    (720, 720),
    (1080, 1080),
})

VIDEO_FORMATS = ("mp4", "avi", "mov")
IMAGE_FORMATS = ("jpg", "png", "webp")

DEFAULT_FONT_SIZE = 24
TIMESTAMP_RE = re.compile(r"^(\d{2}):([0-5]\d):([0-5]\d)$")


def parse_timestamp(value: str) -> int:
    """'HH:MM:SS' -> seconds. Raises ValueError on anything else."""
    m = TIMESTAMP_RE.match(value or "")
    if not m:
        raise ValueError(f"{value!r} is not HH:MM:SS")
    hours, minutes, seconds = (int(g) for g in m.groups())
    return hours * 3600 + minutes * 60 + seconds


def format_timestamp(total_seconds: float) -> str:
    total = int(total_seconds)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


@dataclass(frozen=True)
class Cut:
    kind: ClassVar[OperationKind] = OperationKind.CUT
    start: str
    end: str

    @property
    def start_seconds(self) -> int:
        return parse_timestamp(self.start)

    @property
    def end_seconds(self) -> int:
        return parse_timestamp(self.end)


@dataclass(frozen=True)
class Resize:
    kind: ClassVar[OperationKind] = OperationKind.RESIZE
    width: int
    height: int


@dataclass(frozen=True)
class Convert:
    kind: ClassVar[OperationKind] = OperationKind.CONVERT
    target_format: str


@dataclass(frozen=True)
class Overlay:
    kind: ClassVar[OperationKind] = OperationKind.OVERLAY
    text: str
    position: OverlayPosition
    font_size: int = DEFAULT_FONT_SIZE


OperationSpec = Union[Cut, Resize, Convert, Overlay]


def spec_parameters(spec: OperationSpec) -> dict:
    """JSON-safe parameters, as stored on OperationRecord.parameters."""
    params = asdict(spec)
    if isinstance(spec, Overlay):
        params["position"] = spec.position.value
    return params


def spec_to_payload(spec: OperationSpec) -> dict:
    return {"type": spec.kind.value, "parameters": spec_parameters(spec)}
