"""
================================================================================
FIFO LEDGER - Lot Tracking and Sale Matching
================================================================================

Owns the per-symbol FIFO lot queues and the append-only audit trails
(transactions and realized sales).

Matching Rules:
    - Shares purchased first are considered sold first
    - One queue per symbol, ordered by settlement date (ties keep insertion order)
    - BUY cost is inflated by the fee: gross * (1 + fee%)
    - SELL proceeds are deflated by the fee: gross * (1 - fee%)
    - Settlement date: T+2 business days (weekends skipped)

Atomicity:
    A SELL is planned against the current lots before anything changes. If
    the plan cannot cover the requested quantity, InsufficientHoldingsError
    is raised and the ledger is left untouched.

Usage:
    ledger = FIFOLedger()
    ledger.add_transaction('BUY', 'OGDC', 100, 100, '2024-01-01')
    sale = ledger.add_transaction('SELL', 'OGDC', 50, 150, '2025-02-05')
    sale.capital_gain
================================================================================
"""

import bisect
import copy
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from psx_tax.core.errors import DecodeFailureError, InsufficientHoldingsError, InvalidInputError
from psx_tax.core.models import (
    HoldingSummary,
    Lot,
    LotConsumption,
    RealizedSale,
    Transaction,
    fee_adjusted_price,
    normalize_fee_percent,
)
from psx_tax.core.serialization import (
    decode_holdings,
    decode_list,
    lot_to_dict,
    realized_sale_from_dict,
    realized_sale_to_dict,
    transaction_from_dict,
    transaction_to_dict,
)
from psx_tax.core.settlement import calculate_settlement_date, get_holding_period, parse_date
from psx_tax.decimal_utils import to_decimal
from psx_tax.utils.constants import (
    DATA_VERSION,
    DEFAULT_FEE_PERCENT,
    SETTLEMENT_BUSINESS_DAYS,
    TRANSACTION_TYPES,
)

logger = logging.getLogger("psx_tax_engine")


def _positive(value, name) -> Decimal:
    number = to_decimal(value, default=None)
    if number is None or not number.is_finite() or number <= 0:
        raise InvalidInputError(f"{name} must be a positive number, got {value!r}")
    return number


def _symbol(value) -> str:
    symbol = str(value or '').strip().upper()
    if not symbol:
        raise InvalidInputError("Symbol is required")
    return symbol


class FIFOLedger:
    def __init__(self, default_fee_percent=DEFAULT_FEE_PERCENT, settlement_days=SETTLEMENT_BUSINESS_DAYS):
        self.default_fee_percent = normalize_fee_percent(default_fee_percent)
        self.settlement_days = int(settlement_days)
        self.holdings: Dict[str, List[Lot]] = {}
        self.transactions: List[Transaction] = []
        self.realized_gains: List[RealizedSale] = []
        self._next_id = 1

    # ------------------------------------------------------------------
    # Transaction ingestion
    # ------------------------------------------------------------------

    def settlement_date_for(self, trade_date):
        return calculate_settlement_date(trade_date, self.settlement_days)

    def add_transaction(self, tx_type, symbol, quantity, price, trade_date, fee_percent=None):
        """
        Record a BUY or SELL.

        Returns:
            Transaction for a BUY, RealizedSale for a SELL

        Raises:
            InvalidInputError: bad type, symbol, quantity, price or date
            InsufficientHoldingsError: SELL exceeds the shares held
        """
        tx_type = str(tx_type or '').strip().upper()
        if tx_type not in TRANSACTION_TYPES:
            raise InvalidInputError(f"Transaction type must be BUY or SELL, got {tx_type!r}")
        symbol = _symbol(symbol)
        quantity = _positive(quantity, 'Quantity')
        price = _positive(price, 'Price')
        trade = parse_date(trade_date, 'trade date')
        settlement = self.settlement_date_for(trade)
        fee = normalize_fee_percent(fee_percent, self.default_fee_percent)
        net_price = fee_adjusted_price(tx_type, price, fee)

        if tx_type == 'SELL':
            # Plan before building the audit record so a failed sell burns no id
            plan = self._plan_consumption(symbol, quantity, settlement)

        txn = Transaction(
            id=self._next_id,
            type=tx_type,
            symbol=symbol,
            quantity=quantity,
            price=price,
            fee_percent=fee,
            net_price=net_price,
            trade_date=trade,
            settlement_date=settlement,
            timestamp=datetime.now(),
        )

        if tx_type == 'BUY':
            lots = self.holdings.setdefault(symbol, [])
            # Keep the queue in settlement order even for back-dated buys
            position = bisect.bisect_right([lot.settlement_date for lot in lots], settlement)
            lots.insert(position, Lot(
                quantity=quantity,
                gross_price=price,
                fee_percent=fee,
                settlement_date=settlement,
                net_price=net_price,
                transaction_id=txn.id,
            ))
            self._commit_transaction(txn)
            logger.info(f"BUY {quantity} {symbol} @ {price} (net {net_price}, settles {settlement})")
            return txn

        lots = self.holdings[symbol]
        for index, take, _ in plan:
            lots[index].quantity -= take
        self.holdings[symbol] = [lot for lot in lots if lot.quantity > 0]
        if not self.holdings[symbol]:
            del self.holdings[symbol]

        sale = RealizedSale(
            symbol=symbol,
            quantity_sold=quantity,
            sell_price=net_price,
            gross_sell_price=price,
            fee_percent=fee,
            sale_date=settlement,
            lots_used=tuple(record for _, _, record in plan),
            transaction_id=txn.id,
        )
        self._commit_transaction(txn)
        self.realized_gains.append(sale)
        logger.info(
            f"SELL {quantity} {symbol} @ {price} (net {net_price}): "
            f"cost basis {sale.total_cost_basis}, proceeds {sale.sale_proceeds}, gain {sale.capital_gain}"
        )
        return sale

    def _commit_transaction(self, txn: Transaction):
        self.transactions.append(txn)
        self._next_id = txn.id + 1

    def _plan_consumption(self, symbol, quantity, sale_settlement):
        """
        Walk the queue oldest-first and work out which lots cover the sale.
        Returns (lot index, quantity taken, consumption record) tuples and
        never mutates a lot.
        """
        lots = self.holdings.get(symbol) or []
        available = sum((lot.quantity for lot in lots), Decimal(0))
        if not lots or available < quantity:
            raise InsufficientHoldingsError(symbol, quantity, available)

        plan = []
        remaining = quantity
        for index, lot in enumerate(lots):
            if remaining <= 0:
                break
            take = min(lot.quantity, remaining)
            if take <= 0:
                continue
            record = LotConsumption(
                purchase_date=lot.settlement_date,
                quantity=take,
                cost_per_unit=lot.net_price,
                gross_cost_per_unit=lot.gross_price,
                fee_percent=lot.fee_percent,
                holding_period=get_holding_period(lot.settlement_date, sale_settlement),
            )
            logger.debug(f"  -> {take} {symbol} from lot settled {lot.settlement_date} @ {lot.net_price}")
            plan.append((index, take, record))
            remaining -= take
        return plan

    def calculate_sale(self, symbol, quantity, price, sale_date, fee_percent=None) -> RealizedSale:
        """Simulate a SELL against current lots without changing anything."""
        symbol = _symbol(symbol)
        quantity = _positive(quantity, 'Quantity')
        price = _positive(price, 'Price')
        settlement = self.settlement_date_for(parse_date(sale_date, 'sale date'))
        fee = normalize_fee_percent(fee_percent, self.default_fee_percent)

        plan = self._plan_consumption(symbol, quantity, settlement)
        return RealizedSale(
            symbol=symbol,
            quantity_sold=quantity,
            sell_price=fee_adjusted_price('SELL', price, fee),
            gross_sell_price=price,
            fee_percent=fee,
            sale_date=settlement,
            lots_used=tuple(record for _, _, record in plan),
            is_simulation=True,
        )

    def get_cost_basis_for_sale(self, symbol, quantity):
        """FIFO cost preview for selling `quantity`; covers as much as is held."""
        symbol = str(symbol or '').strip().upper()
        quantity = to_decimal(quantity)
        remaining = quantity
        total_cost = Decimal(0)
        lots = []
        for lot in self.holdings.get(symbol, []):
            if remaining <= 0:
                break
            take = min(lot.quantity, remaining)
            cost = take * lot.net_price
            total_cost += cost
            lots.append({
                'quantity': take,
                'cost_per_unit': lot.net_price,
                'total_cost': cost,
                'purchase_date': lot.settlement_date,
            })
            remaining -= take
        return {
            'total_cost': total_cost,
            'average_cost': total_cost / quantity if quantity > 0 else Decimal(0),
            'lots': lots,
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_holdings(self) -> Dict[str, HoldingSummary]:
        summary = {}
        for symbol, lots in self.holdings.items():
            live = [lot for lot in lots if lot.quantity > 0]
            total_quantity = sum((lot.quantity for lot in live), Decimal(0))
            if total_quantity <= 0:
                continue
            summary[symbol] = HoldingSummary(
                symbol=symbol,
                total_quantity=total_quantity,
                total_cost_basis=sum((lot.cost_basis for lot in live), Decimal(0)),
                lots=tuple(lot.copy() for lot in live),
            )
        return summary

    def get_total_quantity(self, symbol) -> Decimal:
        lots = self.holdings.get(str(symbol or '').upper(), [])
        return sum((lot.quantity for lot in lots), Decimal(0))

    def get_realized_gains(self) -> List[RealizedSale]:
        return list(self.realized_gains)

    def get_transactions(self) -> List[Transaction]:
        return list(self.transactions)

    def get_symbols(self) -> List[str]:
        return [symbol for symbol, lots in self.holdings.items() if lots]

    def get_lots(self, symbol) -> List[Lot]:
        """Deep copies of a symbol's lots, FIFO order."""
        return copy.deepcopy(self.holdings.get(str(symbol or '').upper(), []))

    def replace_lots(self, symbol, lots):
        """Swap a symbol's whole lot list; used for corporate actions and their reversal."""
        symbol = _symbol(symbol)
        kept = [copy.deepcopy(lot) for lot in lots if lot.quantity > 0]
        if kept:
            self.holdings[symbol] = kept
        else:
            self.holdings.pop(symbol, None)

    def reset(self):
        self.holdings = {}
        self.transactions = []
        self.realized_gains = []
        self._next_id = 1
        logger.info("FIFO ledger reset")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def export_data(self) -> dict:
        return {
            'version': DATA_VERSION,
            'holdings': {
                symbol: [lot_to_dict(lot) for lot in lots]
                for symbol, lots in self.holdings.items() if lots
            },
            'transactions': [transaction_to_dict(txn) for txn in self.transactions],
            'realizedGains': [realized_sale_to_dict(sale) for sale in self.realized_gains],
            'exportDate': datetime.now().isoformat(),
        }

    def import_data(self, data: Optional[dict]):
        """
        Replace ledger state with a snapshot, migrating legacy layouts.
        The snapshot is fully decoded before anything is replaced.
        """
        if not isinstance(data, dict):
            raise DecodeFailureError(f"Snapshot must be an object, got {type(data).__name__}")

        version = data.get('version')
        if version is not None and str(version) != DATA_VERSION:
            logger.warning(f"Snapshot version mismatch: {version} vs {DATA_VERSION}")

        holdings = decode_holdings(data.get('holdings'))
        transactions = decode_list(data.get('transactions'), transaction_from_dict, 'transactions')
        realized = decode_list(data.get('realizedGains'), realized_sale_from_dict, 'realizedGains')

        self.holdings = holdings
        self.transactions = transactions
        self.realized_gains = realized
        self._next_id = max((txn.id for txn in transactions), default=0) + 1
        logger.info(
            f"Imported {sum(len(l) for l in holdings.values())} lots, "
            f"{len(transactions)} transactions, {len(realized)} realized sales"
        )
