"""
================================================================================
CONSTANTS - System-Wide Configuration Values
================================================================================

Centralized repository for the hardcoded constants used throughout the
PSX capital-gains tax engine. Organized by functional category.

Constant Categories:
    1. File Paths - Directory and file locations
    2. Ledger - Fee defaults and settlement cycle
    3. Tax Regime - Cutoff date, flat rate and filer brackets
    4. Storage - Snapshot versioning and backups

Key Constants:

    Ledger:
        DEFAULT_FEE_PERCENT = 0.5
            Brokerage + CVT + levies folded into one percentage, applied
            when the caller omits or mangles the fee

        SETTLEMENT_BUSINESS_DAYS = 2
            PSX ready market settles T+2 (weekends skipped, no holidays)

    Tax Regime:
        TAX_REGIME_CUTOFF = 2024-07-01
            Lots settled on/after this date pay the flat rate regardless
            of filer status or holding period

        FILER_TAX_BRACKETS
            Holding-day thresholds and rates for filer lots acquired
            before the cutoff

        SUPER_TAX_THRESHOLD = 150,000,000
            Net realized gain above which a super tax advisory is raised

File Path Constants:
    All paths are relative to BASE_DIR (current working directory)
    Supports monkeypatching for test isolation

Note:
    Values in this file are STATIC. For runtime-configurable settings,
    use config.json via psx_tax.utils.config module.
================================================================================
"""

from datetime import date
from decimal import Decimal
from pathlib import Path

# ==========================================
# FILE PATHS
# ==========================================
BASE_DIR = Path.cwd()
OUTPUT_DIR = BASE_DIR / 'outputs'
LOG_DIR = OUTPUT_DIR / 'logs'
DATA_DIR = BASE_DIR / 'data'
DATA_FILE = DATA_DIR / 'psx_tax_data.json'
BACKUP_DIR = DATA_DIR / 'backups'
CONFIG_FILE = BASE_DIR / 'configs' / 'config.json'

# ==========================================
# LEDGER CONSTANTS
# ==========================================
DEFAULT_FEE_PERCENT = Decimal('0.5')
SETTLEMENT_BUSINESS_DAYS = 2
TRANSACTION_TYPES = ('BUY', 'SELL')

# ==========================================
# TAX REGIME CONSTANTS
# ==========================================
TAX_REGIME_CUTOFF = date(2024, 7, 1)
FLAT_TAX_RATE = Decimal('0.15')
LONG_TERM_HOLDING_DAYS = 365

# (minimum holding days, rate) for filer lots acquired before the cutoff.
# Evaluated from the longest holding down; the first threshold met wins.
FILER_TAX_BRACKETS = (
    (1460, Decimal('0')),
    (1095, Decimal('0.075')),
    (730, Decimal('0.10')),
    (365, Decimal('0.125')),
    (0, Decimal('0.15')),
)
BRACKET_BOUNDARY_DAYS = (365, 730, 1095, 1460)

# Section 4C super tax is advisory only, never part of the computed tax
SUPER_TAX_THRESHOLD = Decimal('150000000')

# ==========================================
# CORPORATE ACTIONS
# ==========================================
CORPORATE_ACTION_TYPES = ('BONUS', 'RIGHT')

# ==========================================
# STORAGE CONSTANTS
# ==========================================
DATA_VERSION = '1.0'
APPLICATION_NAME = 'PSX Capital Gains Tax Engine'
DEFAULT_KEEP_BACKUPS = 5
FILE_LOCK_TIMEOUT_SECONDS = 10
