"""
================================================================================
CORE MODULE - Core Business Logic
================================================================================

Central package for the FIFO ledger, tax calculation and persistence.

Exported Classes:
    FIFOLedger - Per-symbol FIFO lot queues, transactions, realized sales
    TaxCalculator - Section 37A capital-gains tax per consumed lot
    CorporateActionsManager - Bonus/right issue adjustments with reversal
    WhatIfEngine - Read-only timing, filer and sale analysis
    SnapshotStore - Locked JSON persistence with backups
    PortfolioSession - Wires all of the above together

Usage:
    from psx_tax.core import FIFOLedger, TaxCalculator
    from psx_tax.core.errors import InsufficientHoldingsError
================================================================================
"""

from psx_tax.core.corporate_actions import CorporateActionRecord, CorporateActionsManager, parse_ratio
from psx_tax.core.errors import (
    ActionNotFoundError,
    AlreadyReversedError,
    DecodeFailureError,
    InsufficientHoldingsError,
    InvalidInputError,
    InvalidParametersError,
    TaxEngineError,
    UnknownSymbolError,
)
from psx_tax.core.ledger import FIFOLedger
from psx_tax.core.models import HoldingPeriod, HoldingSummary, Lot, LotConsumption, RealizedSale, Transaction
from psx_tax.core.session import PortfolioSession
from psx_tax.core.settlement import calculate_settlement_date, get_holding_period
from psx_tax.core.storage import SnapshotStore
from psx_tax.core.tax_calculator import AggregateTax, LotTax, TaxBreakdown, TaxCalculator, TaxMilestone
from psx_tax.core.what_if import FilerComparison, SaleAnalysis, TimingAnalysis, TimingScenario, WhatIfEngine

__all__ = [
    'FIFOLedger',
    'TaxCalculator',
    'CorporateActionsManager',
    'CorporateActionRecord',
    'parse_ratio',
    'WhatIfEngine',
    'SnapshotStore',
    'PortfolioSession',
    'Lot',
    'Transaction',
    'LotConsumption',
    'RealizedSale',
    'HoldingPeriod',
    'HoldingSummary',
    'LotTax',
    'TaxBreakdown',
    'AggregateTax',
    'TaxMilestone',
    'TimingScenario',
    'TimingAnalysis',
    'FilerComparison',
    'SaleAnalysis',
    'calculate_settlement_date',
    'get_holding_period',
    'TaxEngineError',
    'InvalidInputError',
    'InvalidParametersError',
    'InsufficientHoldingsError',
    'UnknownSymbolError',
    'ActionNotFoundError',
    'AlreadyReversedError',
    'DecodeFailureError',
]
