"""
Sequential pipeline executor.

Each stage consumes the previous stage's output (the source file for the
first stage). Stages are never retried here: the first failed stage halts the
chain, its OperationRecord goes to ERROR through the lifecycle manager and a
ProcessingError is raised to the caller.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings

from .engine import MediaTransformEngine, TransformResult
from .errors import ProcessingError
from .lifecycle import lifecycle as default_lifecycle
from .models import OperationRecord
from .notifier import notifier as default_notifier
from .operations import OperationSpec, spec_parameters
from .topics import NotificationKind

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    final_path: str
    output_format: str
    records: list = field(default_factory=list)


class PipelineExecutor:
    def __init__(self, engine=None, notifier=None, lifecycle=None, scratch_dir=None):
        self.engine = engine or MediaTransformEngine()
        self.notifier = notifier or default_notifier
        self.lifecycle = lifecycle or default_lifecycle
        self.scratch_dir = Path(scratch_dir or settings.MEDIA_SCRATCH_DIR)

    def run(self, asset, batch, specs: list[OperationSpec], source_path: str) -> PipelineResult:
        if not specs:
            raise ProcessingError("nothing to execute: the operation chain is empty")

        current_input = str(source_path)
        current_format = Path(source_path).suffix.lstrip(".").lower()
        intermediates: list[str] = []
        records: list[OperationRecord] = []

        for position, spec in enumerate(specs):
            record = OperationRecord.objects.create(
                asset=asset,
                batch=batch,
                kind=spec.kind.value,
                position=position,
                parameters=spec_parameters(spec),
                input_path=current_input,
            )
            records.append(record)
            logger.info(
                "stage_started",
                extra={"record_id": str(record.id), "kind": spec.kind.value, "position": position, "input": current_input},
            )

            result = self._invoke(current_input, spec)
            output = Path(result.output_path) if result.success and result.output_path else None
            if output is None or not output.is_file():
                detail = result.detail or f"{spec.kind.value} produced no output file"
                self._abort(record, result, intermediates)
                raise ProcessingError(
                    f"stage {position} ({spec.kind.value}) failed: {detail}",
                    record_id=record.id,
                )

            record.output_path = str(output)
            record.save(update_fields=["output_path", "updated_at"])
            self.lifecycle.complete(record)
            self.notifier.publish(NotificationKind(spec.kind.value), record.id, status_hint="completed")

            if position < len(specs) - 1:
                intermediates.append(str(output))
            current_input = str(output)
            current_format = output.suffix.lstrip(".").lower()

        self._discard(intermediates)
        logger.info("pipeline_completed", extra={"stages": len(specs), "final": current_input})
        return PipelineResult(final_path=current_input, output_format=current_format, records=records)

    def _invoke(self, input_path: str, spec: OperationSpec) -> TransformResult:
        try:
            return self.engine.transform(input_path, spec)
        except Exception as exc:
            logger.exception("transform_raised", extra={"kind": spec.kind.value, "input": input_path})
            return TransformResult(False, detail=str(exc))

    def _abort(self, record, result: TransformResult, intermediates: list[str]) -> None:
        transition = self.lifecycle.fail(record)
        logger.error(
            "stage_failed",
            extra={
                "record_id": str(record.id),
                "kind": record.kind,
                "status": transition.current,
                "retry_count": transition.retry_count,
                "detail": result.detail[-1000:],
            },
        )
        partial = [result.output_path] if result.output_path else []
        self._discard(intermediates + partial)

    def _discard(self, paths: list[str]) -> None:
        for path in paths:
            candidate = Path(path)
            # only ever delete inside scratch
            if self.scratch_dir.resolve() not in candidate.resolve().parents:
                logger.warning("discard_outside_scratch", extra={"path": path})
                continue
            candidate.unlink(missing_ok=True)
        if paths:
            logger.debug("intermediates_discarded", extra={"count": len(paths)})
