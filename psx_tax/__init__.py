"""
================================================================================
PSX_TAX PACKAGE - Pakistan Stock Exchange Capital Gains Tax Engine
================================================================================

Top-level package containing all application modules organized by function.

Package Structure:
    psx_tax/core/        - Ledger, tax calculator, corporate actions, storage
    psx_tax/processors/  - Broker statement importers
    psx_tax/utils/       - Shared utilities (logging, config, constants)

The root cli.py is the command-line front end.
================================================================================
"""

__version__ = "2025.1"
