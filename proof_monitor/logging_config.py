"""
Logging Config Module

Console output stays short for CLI use; with MONITOR_DEBUG=1 (or --verbose)
the services logger also writes full records to a debug file.
"""
import logging
import sys
import os
from pathlib import Path

MONITOR_DEBUG = os.getenv('MONITOR_DEBUG', '').lower() in ('1', 'true', 'yes')

DEBUG_LOG_PATH = Path(os.getenv('MONITOR_DEBUG_LOG', 'monitor_debug.log'))

DEBUG_HANDLER_NAME = 'monitor_debug_file'

# Third-party loggers that flood the console at INFO
QUIET_LOGGERS = ('aiohttp', 'aiohttp.access', 'asyncio', 'urllib3', 'web3')

# Level tag and its ANSI colour
_LEVEL_TAGS = {
    logging.DEBUG: ('D', '\033[90m'),
    logging.INFO: ('I', '\033[32m'),
    logging.WARNING: ('W', '\033[33m'),
    logging.ERROR: ('E', '\033[31m'),
    logging.CRITICAL: ('!', '\033[31;1m'),
}
_RESET = '\033[0m'


class ConciseFormatter(logging.Formatter):
    """Coloured `[I] message`, with the logger name added for debug and error records."""

    def format(self, record):
        tag, colour = _LEVEL_TAGS.get(record.levelno, _LEVEL_TAGS[logging.INFO])
        tag = f"{colour}[{tag}]{_RESET}"
        message = record.getMessage()
        if record.levelno in (logging.INFO, logging.WARNING):
            line = f"{tag} {message}"
        else:
            line = f"{tag} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class VerboseFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s %(levelname)-8s %(name)s:%(lineno)d %(message)s',
            datefmt='%H:%M:%S',
        )


def setup_logging(level=logging.INFO, debug: bool = MONITOR_DEBUG):
    """
    Install the console handler on the root logger, replacing any existing
    handlers, and return the `proof_monitor` logger.
    """
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ConciseFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(level)

    monitor_logger = logging.getLogger('proof_monitor')
    monitor_logger.setLevel(level)
    if debug:
        setup_debug_logging()
        monitor_logger.info(f"Debug log: {DEBUG_LOG_PATH}")
    return monitor_logger


def setup_debug_logging(path: Path = None):
    """Attach the debug file handler to the services logger, once."""
    services_logger = logging.getLogger('proof_monitor.services')
    services_logger.setLevel(logging.DEBUG)
    if any(h.name == DEBUG_HANDLER_NAME for h in services_logger.handlers):
        return services_logger

    debug_file = logging.FileHandler(path or DEBUG_LOG_PATH, mode='w', encoding='utf-8')
    debug_file.name = DEBUG_HANDLER_NAME
    debug_file.setLevel(logging.DEBUG)
    debug_file.setFormatter(VerboseFormatter())
    services_logger.addHandler(debug_file)
    return services_logger
