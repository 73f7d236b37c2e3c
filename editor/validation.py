"""
Pre-flight validation for an operation chain.

Runs entirely in memory against the asset's recorded metadata: no filesystem
access, no engine call, no database write. Every problem in the chain is
collected and raised together as one ValidationError.
"""
import logging
import re
from dataclasses import dataclass

from .errors import OperationError, ValidationError
from .operations import (
    DEFAULT_FONT_SIZE,
    IMAGE_FORMATS,
    SUPPORTED_RESOLUTIONS,
    VIDEO_FORMATS,
    Convert,
    Cut,
    OperationKind,
    OperationSpec,
    Overlay,
    OverlayPosition,
    Resize,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

OVERLAY_TEXT_MAX = 255
FONT_SIZE_MIN, FONT_SIZE_MAX = 1, 100
_OVERLAY_TEXT_RE = re.compile(r"^[^\W_]+(?:\s+[^\W_]+)*$")   # letters/digits (any script) and inner spaces


@dataclass
class _ChainState:
    """What the media looks like after the stages validated so far."""
    media_kind: str
    format: str
    duration: float | None


class _Collector:
    def __init__(self):
        self.errors: list[OperationError] = []

    def add(self, index: int, operation: str, field: str, message: str) -> None:
        self.errors.append(OperationError(index=index, operation=operation, field=field, message=message))


def _formats_for(media_kind: str) -> tuple[str, ...]:
    return IMAGE_FORMATS if media_kind == "image" else VIDEO_FORMATS


def _int_param(params: dict, name: str, idx: int, op: str, errors: _Collector) -> int | None:
    value = params.get(name)
    if value is None:
        errors.add(idx, op, name, "is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        errors.add(idx, op, name, "must be an integer")
        return None
    return value


def _validate_cut(idx, params, state: _ChainState, errors: _Collector) -> Cut | None:
    op = OperationKind.CUT.value
    if state.media_kind != "video":
        errors.add(idx, op, "type", "cut is only supported for video assets")
        return None

    start_raw, end_raw = params.get("start_time"), params.get("end_time")
    bounds = {}
    for name, raw in (("start_time", start_raw), ("end_time", end_raw)):
        if raw in (None, ""):
            errors.add(idx, op, name, "is required")
            continue
        try:
            bounds[name] = parse_timestamp(str(raw))
        except ValueError:
            errors.add(idx, op, name, "must use the HH:MM:SS format")
    if len(bounds) != 2:
        return None

    start, end = bounds["start_time"], bounds["end_time"]
    ok = True
    if start == end:
        errors.add(idx, op, "end_time", "start and end must differ")
        ok = False
    elif start > end:
        errors.add(idx, op, "start_time", f"start ({start_raw}) is after end ({end_raw})")
        ok = False
    if state.duration is not None:
        limit = format_timestamp(state.duration)
        if start > state.duration:
            errors.add(idx, op, "start_time", f"start ({start_raw}) exceeds media duration ({limit})")
            ok = False
        if end > state.duration:
            errors.add(idx, op, "end_time", f"end ({end_raw}) exceeds media duration ({limit})")
            ok = False
    if not ok:
        return None

    state.duration = float(end - start)
    return Cut(start=str(start_raw), end=str(end_raw))


def _validate_resize(idx, params, state: _ChainState, errors: _Collector) -> Resize | None:
    op = OperationKind.RESIZE.value
    width = _int_param(params, "width", idx, op, errors)
    height = _int_param(params, "height", idx, op, errors)
    if width is None or height is None:
        return None
    if width <= 0 or height <= 0:
        errors.add(idx, op, "resolution", f"{width}x{height}: width and height must be positive")
        return None
    if (width, height) not in SUPPORTED_RESOLUTIONS:
        supported = ", ".join(f"{w}x{h}" for w, h in sorted(SUPPORTED_RESOLUTIONS))
        errors.add(idx, op, "resolution", f"{width}x{height} is not supported; use one of {supported}")
        return None
    return Resize(width=width, height=height)


def _validate_convert(idx, params, state: _ChainState, errors: _Collector) -> Convert | None:
    op = OperationKind.CONVERT.value
    target = params.get("output_format")
    if not isinstance(target, str) or not target.strip():
        errors.add(idx, op, "output_format", "is required")
        return None
    target = target.strip().lower().lstrip(".")
    allowed = _formats_for(state.media_kind)
    if target not in allowed:
        errors.add(idx, op, "output_format", f"{target!r} is not supported for {state.media_kind}; use one of {', '.join(allowed)}")
        return None
    state.format = target
    return Convert(target_format=target)


def _validate_overlay(idx, params, state: _ChainState, errors: _Collector) -> Overlay | None:
    op = OperationKind.OVERLAY.value
    ok = True

    text = params.get("text")
    if not isinstance(text, str) or not text.strip():
        errors.add(idx, op, "text", "is required")
        ok = False
    elif len(text) > OVERLAY_TEXT_MAX:
        errors.add(idx, op, "text", f"must be at most {OVERLAY_TEXT_MAX} characters")
        ok = False
    elif not _OVERLAY_TEXT_RE.match(text.strip()):
        errors.add(idx, op, "text", "may only contain letters, digits and spaces")
        ok = False

    position = None
    raw_position = params.get("position")
    if raw_position in (None, ""):
        errors.add(idx, op, "position", "is required")
        ok = False
    else:
        try:
            position = OverlayPosition(str(raw_position).lower())
        except ValueError:
            choices = ", ".join(p.value for p in OverlayPosition)
            errors.add(idx, op, "position", f"{raw_position!r} is not one of {choices}")
            ok = False

    font_size = DEFAULT_FONT_SIZE
    if params.get("font_size") is not None:
        font_size = _int_param(params, "font_size", idx, op, errors)
        if font_size is None:
            ok = False
        elif not FONT_SIZE_MIN <= font_size <= FONT_SIZE_MAX:
            errors.add(idx, op, "font_size", f"must be between {FONT_SIZE_MIN} and {FONT_SIZE_MAX}")
            ok = False

    if not ok:
        return None
    return Overlay(text=text.strip(), position=position, font_size=font_size)


_VALIDATORS = {
    OperationKind.CUT: _validate_cut,
    OperationKind.RESIZE: _validate_resize,
    OperationKind.CONVERT: _validate_convert,
    OperationKind.OVERLAY: _validate_overlay,
}


def validate_chain(asset, raw_operations) -> list[OperationSpec]:
    """
    Turn the raw ``[{"type": ..., "parameters": {...}}, ...]`` payload into
    typed specs, or raise ValidationError listing every violation.

    ``asset`` only needs ``kind``, ``container_format`` and ``duration_seconds``.
    """
    errors = _Collector()
    if not isinstance(raw_operations, (list, tuple)) or not raw_operations:
        errors.add(-1, "chain", "operations", "at least one operation is required")
        raise ValidationError(errors.errors)

    state = _ChainState(
        media_kind=asset.kind,
        format=(asset.container_format or "").lower(),
        duration=asset.duration_seconds,
    )
    specs: list[OperationSpec] = []
    for idx, raw in enumerate(raw_operations):
        if not isinstance(raw, dict):
            errors.add(idx, "unknown", "operation", "must be an object with 'type' and 'parameters'")
            continue
        raw_type = str(raw.get("type") or "").strip().lower()
        try:
            kind = OperationKind(raw_type)
        except ValueError:
            supported = ", ".join(k.value for k in OperationKind)
            errors.add(idx, raw_type or "unknown", "type", f"unsupported operation type; use one of {supported}")
            continue
        params = raw.get("parameters")
        if not isinstance(params, dict):
            errors.add(idx, kind.value, "parameters", "is required")
            continue
        spec = _VALIDATORS[kind](idx, params, state, errors)
        if spec is not None:
            specs.append(spec)

    if errors.errors:
        logger.info("operation_chain_rejected", extra={"error_count": len(errors.errors)})
        raise ValidationError(errors.errors)
    return specs
