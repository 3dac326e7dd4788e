import logging
import sys
import threading
from datetime import datetime

ROOT_LOGGER = "monitor"


class MonitorFormatter(logging.Formatter):
    """
    One line per record:
    [ Tue Jan 06 05:32:41 AM UTC 2026 ] : INFO : agency.cz/pricing : Message

    The context column is the target domain (plus the category when the
    monitor passes one). Records without a context show the worker thread.
    """

    def format(self, record):
        stamp = datetime.utcfromtimestamp(record.created).strftime("%a %b %d %I:%M:%S %p UTC %Y")
        line = f"[ {stamp} ] : {record.levelname} : {self.context_of(record)} : {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    @staticmethod
    def context_of(record):
        context = getattr(record, "context", None)
        if not context:
            # Pool threads are named Worker_0, Worker_1, ...
            name = record.threadName or ""
            return name if name.startswith("Worker") else "main"
        category = getattr(record, "category", None)
        if category is not None:
            return f"{context}/{getattr(category, 'value', category)}"
        return context


def setup_logger(level=logging.INFO, log_file=None):
    """Console (and optional file) handlers on the 'monitor' logger; safe to call twice."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    if not root.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(MonitorFormatter())
        root.addHandler(console)
    if log_file:
        attach_file_handler(log_file)
    return root


_file_lock = threading.Lock()


def attach_file_handler(log_file):
    """Add a file handler after start-up (CLI --log-file); the same file is attached once."""
    root = logging.getLogger(ROOT_LOGGER)
    with _file_lock:
        for handler in root.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename.endswith(log_file):
                return root
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(MonitorFormatter())
        root.addHandler(file_handler)
    return root


# Global logger instance
logger = setup_logger()
