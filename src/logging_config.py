"""Root logger setup for the causal-engine command line.

``configure_logging()`` sends records to stderr and appends them to
``logs/causal_engine.log``, so a long EM run leaves a trace of its phases
and convergence reports. Library modules only create named loggers; the
handlers are attached here, once, by the CLI. A second call, or a call from
a host application that already configured logging, leaves the root logger
as it is.
"""

import logging
import os

LOG_DIR = "logs"
LOG_FILE = "causal_engine.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _file_handler(log_dir: str, formatter: logging.Formatter) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE), mode="a")
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: int = logging.INFO, log_dir: str = LOG_DIR) -> None:
    """Attach stderr and log-file handlers to the root logger at ``level``.

    Does nothing if the root logger already has handlers. An unwritable
    ``log_dir`` leaves only the stderr handler and is reported as a warning.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    stderr = logging.StreamHandler()
    stderr.setFormatter(formatter)
    root.addHandler(stderr)
    root.setLevel(level)

    try:
        root.addHandler(_file_handler(log_dir, formatter))
    except OSError as e:
        logging.getLogger(__name__).warning(f"Not writing {LOG_FILE} to {log_dir}: {e}")
