"""Error kinds raised while talking to the cluster and parsing its output.

Collector-local errors (``CollectorError`` subclasses) make one collector
contribute nothing for a cycle. ``ParseError`` is record-local and only skips
the offending record. ``VersionResolutionError`` disables version-gated
collectors for a cycle.
"""

from typing import Optional, Sequence


class ExporterError(Exception):
    """Base class for every error raised by the exporter."""


class CollectorError(ExporterError):
    """An error that costs a collector its samples for one cycle."""


class QueryExecutionError(CollectorError):
    """An external query failed, exited non-zero or ran past its deadline."""

    def __init__(
        self,
        query: str,
        args: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
        reason: str = "",
    ):
        self.query = query
        self.args_ = tuple(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.timed_out = timed_out
        self.reason = reason

        if timed_out:
            detail = "timed out"
        elif reason:
            detail = reason
        else:
            detail = f"exit code {returncode}"
        if self.stderr:
            detail = f"{detail}: {self.stderr}"
        super().__init__(f"query {self.identity} failed ({detail})")

    @property
    def identity(self) -> str:
        return " ".join((self.query,) + self.args_)


class DecodeError(CollectorError):
    """A payload did not have the structure the collector expected."""

    def __init__(self, query: str, reason: str):
        self.query = query
        self.reason = reason
        super().__init__(f"failed decoding {query} output: {reason}")


class ParseError(ExporterError):
    """A text field did not match its expected grammar."""

    def __init__(self, text: str, reason: str = "unexpected format"):
        self.text = text
        self.reason = reason
        super().__init__(f"{reason}: {text!r}")


class VersionResolutionError(ExporterError):
    """The cluster version could not be determined."""


class ConfigError(ExporterError):
    """The configuration file could not be read."""
