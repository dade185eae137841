"""
================================================================================
UTILS MODULE - Shared Utilities and Helpers
================================================================================

Shared infrastructure used across all application components.

Exported Functions:
    Logging:
        - setup_logging() - Initialize logging infrastructure
        - set_run_context(context) - Set execution context
        - logger - Main application logger

    Configuration:
        - load_config() - Load configuration from config.json
        - save_config() - Persist configuration

Usage:
    from psx_tax.utils import logger, load_config
    from psx_tax.utils.constants import TAX_REGIME_CUTOFF
================================================================================
"""

from .logger import setup_logging, set_run_context, logger
from .config import load_config, save_config

__all__ = [
    'setup_logging',
    'set_run_context',
    'logger',
    'load_config',
    'save_config',
]
