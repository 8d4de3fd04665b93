"""News pipeline core: stage sequencing for one scheduled run."""

from .config import PipelineConfig  # noqa: F401
from .context import RunContext  # noqa: F401
from .controller import Pipeline, RunOutcome, RunReport  # noqa: F401
from .errors import ErrorKind, PipelineConfigError, RunCancelledError, RunTimeoutError, StageError  # noqa: F401
from .models import ComposedItem, FetchResult, NewsMeta, PersistedRecord, RawItem, RunData  # noqa: F401

__all__ = [
    "ComposedItem",
    "ErrorKind",
    "FetchResult",
    "NewsMeta",
    "PersistedRecord",
    "Pipeline",
    "PipelineConfig",
    "PipelineConfigError",
    "RawItem",
    "RunCancelledError",
    "RunContext",
    "RunData",
    "RunOutcome",
    "RunReport",
    "RunTimeoutError",
    "StageError",
]
