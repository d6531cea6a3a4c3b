import logging
import sys
from photoedit.config import settings

# Level names accepted by LOGGING_LEVEL and --log-level
LOG_LEVEL_MAP = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}


def _resolve_level(level_name):
    return LOG_LEVEL_MAP.get(str(level_name).upper(), logging.INFO)


log_level = _resolve_level(getattr(settings, 'LOGGING_LEVEL', 'INFO'))

# One stdout handler shared by every photoedit logger
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(
    logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
)

_known_names = set()


def get_logger(name):
    """
    Return the named logger wired to the photoedit console handler at the
    configured level. Safe to call repeatedly for the same name.
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    if console_handler not in logger.handlers:
        logger.addHandler(console_handler)
    # Output goes through console_handler only, never the root logger too
    logger.propagate = False
    _known_names.add(name)
    return logger


def set_log_level(level_name):
    """Change the level of every logger handed out by get_logger."""
    global log_level
    log_level = _resolve_level(level_name)
    for name in _known_names:
        logging.getLogger(name).setLevel(log_level)
    return log_level
