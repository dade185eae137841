"""
================================================================================
LOGGER - Unified Logging Configuration
================================================================================

Centralized logging infrastructure for all application contexts.

Logging Contexts:
    - 'cli' - Command-line interface operations
    - 'test' - Unit and integration tests
    - 'imported' - Library/module imports (console warnings only, no files)

Log Destinations:
    1. File Logs - outputs/logs/{timestamp}.{context}.log
    2. Console Output - stdout
    3. Rotating Backups - 5MB max per file, 5 backup files

Log Format:
    {timestamp} {level} [{context}]: {message}
    Example: 2025-12-16 10:30:45 INFO [cli]: BUY 100 OGDC @ 100.5 (net)

Usage:
    from psx_tax.utils.logger import set_run_context, logger

    set_run_context('cli')
    logger.info('Recording transaction')
================================================================================
"""

import sys
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

logger = logging.getLogger("psx_tax_engine")
logger.setLevel(logging.INFO)

# Global run context state
_RUN_CONTEXT = 'imported'

LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_context)s]: %(message)s"


class RunContextFilter(logging.Filter):
    """
    Logging filter that adds run context to all log records
    Allows distinguishing between different execution contexts
    """

    def filter(self, record):
        record.run_context = _RUN_CONTEXT
        return True


def set_run_context(context: str, level: int = logging.INFO):
    """
    Set the execution context for logging

    Args:
        context: String identifier ('cli', 'test', 'imported', etc)
        level: Level for the handlers of non-imported contexts
    """
    global _RUN_CONTEXT
    _RUN_CONTEXT = context

    # Clear existing handlers
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if context == 'imported':
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(level)
        # Setup file handler with rotating backups
        try:
            from psx_tax.utils.constants import LOG_DIR

            LOG_DIR.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_file = LOG_DIR / f"{timestamp}.{context}.log"

            file_handler = RotatingFileHandler(
                str(log_file),
                maxBytes=5_000_000,  # 5MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.addFilter(RunContextFilter())
            logger.addHandler(file_handler)
        except OSError as e:
            # Console logging still works without a writable log directory
            sys.stderr.write(f"Log file unavailable: {e}\n")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.addFilter(RunContextFilter())
    logger.addHandler(console_handler)


def setup_logging(context: str = 'imported', level: int = logging.INFO):
    """
    Initialize logging for the application

    Args:
        context: Execution context identifier
        level: Handler level for non-imported contexts
    """
    set_run_context(context, level)
    return logger


# Initialize with default context
set_run_context(_RUN_CONTEXT)
