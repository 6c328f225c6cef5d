import logging
import os

from tqdm import tqdm

LOGGER_NAME = "xlf_translator"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.StreamHandler):
    """Console handler that prints through tqdm so open progress bars are redrawn below each record.

    The stream defaults to stderr, where tqdm draws its bars.
    """

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream, end=self.terminator)
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Set up the package logger for the XLF translator.

    Every module logs through a child of the ``xlf_translator`` logger, so
    configuring it here covers the scanner, the document wrapper and the
    providers. Messages go to a log file and, optionally, to the console
    through a tqdm-aware handler so progress bars stay intact.

    Args:
        log_level_str: The logging level as a string (e.g., 'INFO', 'DEBUG').
        log_file_path: The path to the log file. Empty disables file logging.
        log_to_console: A boolean indicating whether to log to the console.

    Returns:
        The configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)

    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Clear any existing handlers to prevent duplicate logging
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        tqdm_handler = TqdmLoggingHandler()
        tqdm_handler.setFormatter(formatter)
        logger.addHandler(tqdm_handler)

    return logger
