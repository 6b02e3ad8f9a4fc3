"""Exception hierarchy shared by the pipeline, the service and the API."""

from __future__ import annotations

from datetime import date


class FunnelwireError(RuntimeError):
    pass


class ExtractionError(FunnelwireError):
    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source} data extraction failed: {message}")
        self.source = source


class TransformError(FunnelwireError):
    pass


class StoreError(FunnelwireError):
    pass


class AggregationError(FunnelwireError):
    pass


class PipelineError(FunnelwireError):
    """A pipeline stage failed; the run was aborted at ``stage``."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"pipeline failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause


class QueryValidationError(FunnelwireError):
    pass


class NoMetricsError(FunnelwireError):
    def __init__(self, day: date) -> None:
        super().__init__(f"no metrics found for date {day.isoformat()}")
        self.day = day


class ExportError(FunnelwireError):
    pass
