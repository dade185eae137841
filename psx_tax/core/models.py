"""Domain models shared by the ledger, tax calculator and corporate actions."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from psx_tax.decimal_utils import to_decimal
from psx_tax.utils.constants import DEFAULT_FEE_PERCENT


def normalize_fee_percent(fee_percent, default: Decimal = DEFAULT_FEE_PERCENT) -> Decimal:
    """Fee percent as a Decimal; omitted, empty, negative or non-finite values fall back to default."""
    if fee_percent is None or (isinstance(fee_percent, str) and not fee_percent.strip()):
        return default
    value = to_decimal(fee_percent, default=None)
    if value is None or not value.is_finite() or value < 0:
        return default
    return value


def fee_adjusted_price(tx_type: str, price: Decimal, fee_percent: Decimal) -> Decimal:
    """Inflate a buy price or deflate a sell price by the fee percentage."""
    pct = fee_percent / Decimal(100)
    if tx_type == 'BUY':
        return price * (Decimal(1) + pct)
    if tx_type == 'SELL':
        return price * (Decimal(1) - pct)
    return price


@dataclass(frozen=True)
class HoldingPeriod:
    """Time between a lot's purchase settlement and a sale settlement."""

    days: int
    months: int
    years: int
    is_long_term: bool

    @property
    def formatted(self) -> str:
        return f"{self.years}y {self.months - self.years * 12}m ({self.days} days)"


@dataclass
class Lot:
    """A surviving slice of a purchase, consumed oldest-first on sale."""

    quantity: Decimal
    gross_price: Decimal
    fee_percent: Decimal
    settlement_date: date
    net_price: Optional[Decimal] = None
    transaction_id: Optional[int] = None
    source: str = 'BUY'

    def __post_init__(self):
        if self.net_price is None:
            self.net_price = fee_adjusted_price('BUY', self.gross_price, self.fee_percent)

    @property
    def purchase_date(self) -> date:
        return self.settlement_date

    @property
    def cost_per_unit(self) -> Decimal:
        return self.net_price

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.net_price

    def copy(self) -> "Lot":
        return replace(self)


@dataclass(frozen=True)
class Transaction:
    """Immutable audit record of a BUY or SELL."""

    id: int
    type: str
    symbol: str
    quantity: Decimal
    price: Decimal
    fee_percent: Decimal
    net_price: Decimal
    trade_date: date
    settlement_date: date
    timestamp: datetime

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.price

    @property
    def net_total_value(self) -> Decimal:
        return self.quantity * self.net_price


@dataclass(frozen=True)
class LotConsumption:
    """How much of one lot a sale used, and at what cost."""

    purchase_date: date
    quantity: Decimal
    cost_per_unit: Decimal
    gross_cost_per_unit: Decimal
    fee_percent: Decimal
    holding_period: HoldingPeriod

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.cost_per_unit


@dataclass(frozen=True)
class RealizedSale:
    """Outcome of a SELL (or a simulated one)."""

    symbol: str
    quantity_sold: Decimal
    sell_price: Decimal
    gross_sell_price: Decimal
    fee_percent: Decimal
    sale_date: date
    lots_used: Tuple[LotConsumption, ...]
    is_simulation: bool = False
    transaction_id: Optional[int] = None

    @property
    def sale_proceeds(self) -> Decimal:
        return self.quantity_sold * self.sell_price

    @property
    def total_cost_basis(self) -> Decimal:
        return sum((lot.cost_basis for lot in self.lots_used), Decimal(0))

    @property
    def capital_gain(self) -> Decimal:
        return self.sale_proceeds - self.total_cost_basis


@dataclass(frozen=True)
class HoldingSummary:
    """Per-symbol view returned by FIFOLedger.get_holdings()."""

    symbol: str
    total_quantity: Decimal
    total_cost_basis: Decimal
    lots: Tuple[Lot, ...] = field(default_factory=tuple)

    @property
    def average_cost(self) -> Decimal:
        if not self.total_quantity:
            return Decimal(0)
        return self.total_cost_basis / self.total_quantity
