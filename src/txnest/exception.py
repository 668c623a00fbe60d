from typing import List, Optional


class TxnestError(Exception):
    """Base exception for all errors raised by txnest"""


class ConfigurationError(TxnestError):
    """Raised when connection parameters are malformed or incomplete"""


class DriverError(TxnestError):
    """Raised when the underlying driver or database rejects an operation.

    The original driver exception is always available as ``__cause__``.
    """


class BatchError(DriverError):
    """Raised when one of the commands in a batch fails

    Args:
        message (str): Error description
        counts (List[int], optional): Update counts of the commands that
            completed before the failure. ``None`` when the driver did not
            report them.
        index (int, optional): Position of the failing command
    """

    def __init__(
        self,
        message: str,
        counts: Optional[List[int]] = None,
        index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.counts = counts
        self.index = index


class ClosedCursorError(TxnestError):
    """Raised when reading from a result whose resources were released"""


def chain_cleanup_error(
    error: BaseException, cleanup_error: BaseException
) -> BaseException:
    """Attach a failure raised during cleanup to the error being propagated.

    The original error keeps propagating. Every cleanup failure is collected
    on its ``cleanup_errors`` attribute.
    """
    collected = getattr(error, "cleanup_errors", None)
    if collected is None:
        collected = []
        error.cleanup_errors = collected  # type: ignore[attr-defined]
    collected.append(cleanup_error)
    return error
