"""
Log output shared by every gatekeeper module.

Each formatted log line is written to stdout, appended to the log file, and
kept in memory so the control server can return the whole log on request.
The in-memory copy starts with whatever the log file already held.
"""

import logging
import sys
import threading

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LogSink:
    """Append-only writer mirrored to a stream, a file and a memory buffer."""

    def __init__(self, path, stream=None):
        self.path = path
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self._file = open(path, "ab")
        with open(path, "rb") as f:
            self._cache = bytearray(f.read())

    def write(self, data):
        with self._lock:
            self._stream.write(data.decode("utf-8", errors="replace"))
            self._stream.flush()
            self._cache += data
            self._file.write(data)
            self._file.flush()
        return len(data)

    def contents(self):
        with self._lock:
            return bytes(self._cache)

    def close(self):
        with self._lock:
            self._file.close()


class LogSinkHandler(logging.Handler):
    """Logging handler that writes formatted records into a :class:`LogSink`."""

    def __init__(self, sink, level=logging.NOTSET):
        super().__init__(level)
        self.sink = sink

    def emit(self, record):
        try:
            line = self.format(record) + "\n"
            self.sink.write(line.encode("utf-8"))
        except Exception:
            self.handleError(record)


def install_logging(sink, level="INFO"):
    """Route all logging through *sink*, replacing existing root handlers."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(level.upper())

    handler = LogSinkHandler(sink)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    logging.getLogger(__name__).debug("Logging to %s", sink.path)
    return handler
