# __init__.py
# License: MIT

from .client import (
	ResponseStream,
	TransferClient,
	TransferError,
	TransferNetworkError,
	TransferResult,
)
from .metrics import GaugeSink, MetricSink, MultiSink, TqdmSink
from .progress import (
	DEFAULT_UPDATE_INTERVAL,
	ProgressConfigError,
	ProgressError,
	ProgressReader,
	ProgressStateError,
	TimedUpdate,
)
from .utils import CountingReader

__version__ = "1.0.0"
__all__ = [
	"CountingReader",
	"ProgressReader",
	"TimedUpdate",
	"DEFAULT_UPDATE_INTERVAL",
	"MetricSink",
	"GaugeSink",
	"TqdmSink",
	"MultiSink",
	"TransferClient",
	"TransferResult",
	"ResponseStream",
	"ProgressError",
	"ProgressConfigError",
	"ProgressStateError",
	"TransferError",
	"TransferNetworkError",
]
