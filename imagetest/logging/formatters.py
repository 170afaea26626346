"""Logging formatters and filters separating step output from progress logs."""

import logging


class StreamFormatter(logging.Formatter):
    """Formatter tagging sandbox output with the feature that produced it.

    Records logged with ``extra={"stream": ...}`` are prefixed with
    ``[<feature>]`` when a ``feature`` attribute is present, otherwise with
    the stream name. Untagged records are formatted unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a record, prefixing its tag if it carries a stream.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted message
        """
        msg = super().format(record)
        stream = getattr(record, "stream", None)
        if stream is None:
            return msg

        tag = getattr(record, "feature", None) or stream
        return f"[{tag}] {msg}"


class StreamRoutingFilter(logging.Filter):
    """Filter that routes log records based on stream extra parameter.

    Untagged records go to stderr, so sandbox command output tagged
    ``stream="stdout"`` is the only thing written to stdout.

    Parameters
    ----------
    stream_type : str
        Stream handled by the owning handler: "stdout" or "stderr"
    """

    def __init__(self, stream_type: str) -> None:
        super().__init__()
        self.stream_type = stream_type

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "stream", "stderr") == self.stream_type
