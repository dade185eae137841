"""
Snapshot codec for the ledger.

Encodes lots, transactions and realized sales to the JSON-ready camelCase
snapshot layout and decodes them back, migrating legacy snapshots on the way:

- lots written before fee adjustment carry only a net ``price``; gross is
  back-filled from it and the net price recomputed from the fee percent
- realized sales and their lot consumption records get the same gross/net
  reconciliation, and every derived total is recomputed rather than read

Decimals are written as strings so a round trip is exact. Any malformed
member raises DecodeFailureError.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal

import pandas as pd

from psx_tax.core.errors import DecodeFailureError, InvalidInputError
from psx_tax.core.models import (
    Lot,
    LotConsumption,
    RealizedSale,
    Transaction,
    fee_adjusted_price,
    normalize_fee_percent,
)
from psx_tax.core.settlement import calculate_settlement_date, get_holding_period, parse_date
from psx_tax.decimal_utils import to_decimal

logger = logging.getLogger("psx_tax_engine")

_MISSING = object()


def _dec(raw, name):
    if raw is None:
        raise DecodeFailureError(f"Missing numeric field '{name}'")
    value = to_decimal(raw, default=None)
    if value is None or not value.is_finite():
        raise DecodeFailureError(f"Invalid numeric field '{name}': {raw!r}")
    return value


def _first(raw: dict, *names):
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return _MISSING


def _date(raw, name) -> date:
    try:
        return parse_date(raw, name)
    except InvalidInputError as e:
        raise DecodeFailureError(str(e)) from e


def _datetime(raw, fallback: date) -> datetime:
    if raw is None:
        return datetime.combine(fallback, time())
    try:
        return pd.Timestamp(raw).to_pydatetime()
    except (ValueError, TypeError) as e:
        raise DecodeFailureError(f"Invalid timestamp: {raw!r}") from e


def _iso(value) -> str:
    return value.isoformat()


# ====================================================================================
# LOTS
# ====================================================================================

def lot_to_dict(lot: Lot) -> dict:
    return {
        'quantity': str(lot.quantity),
        'grossPrice': str(lot.gross_price),
        'feePercent': str(lot.fee_percent),
        'netPrice': str(lot.net_price),
        'purchaseDate': _iso(lot.settlement_date),
        'transactionId': lot.transaction_id,
        'source': lot.source,
    }


def lot_from_dict(raw: dict) -> Lot:
    if not isinstance(raw, dict):
        raise DecodeFailureError(f"Lot entry must be an object, got {type(raw).__name__}")

    quantity = _dec(_first(raw, 'quantity', 'remainingQuantity'), 'quantity')
    net_raw = _first(raw, 'netPrice', 'price', 'costPerShare')
    if net_raw is _MISSING:
        raise DecodeFailureError("Lot has neither netPrice nor price")
    net = _dec(net_raw, 'netPrice')

    gross_raw = _first(raw, 'grossPrice')
    if gross_raw is _MISSING:
        gross = net
        logger.warning(f"[MIGRATION] Lot without grossPrice; back-filled from net price {net}")
    else:
        gross = _dec(gross_raw, 'grossPrice')

    fee = normalize_fee_percent(raw.get('feePercent'))
    if net == gross and fee > 0:
        net = fee_adjusted_price('BUY', gross, fee)
        logger.warning(f"[MIGRATION] Unadjusted lot price {gross}; recomputed net {net} at {fee}% fee")

    txn_id = raw.get('transactionId')
    return Lot(
        quantity=quantity,
        gross_price=gross,
        fee_percent=fee,
        settlement_date=_date(_first(raw, 'purchaseDate', 'settlementDate'), 'purchaseDate'),
        net_price=net,
        transaction_id=int(txn_id) if txn_id is not None else None,
        source=str(raw.get('source') or 'BUY').upper(),
    )


# ====================================================================================
# TRANSACTIONS
# ====================================================================================

def transaction_to_dict(txn: Transaction) -> dict:
    return {
        'id': txn.id,
        'type': txn.type,
        'symbol': txn.symbol,
        'quantity': str(txn.quantity),
        'price': str(txn.price),
        'feePercent': str(txn.fee_percent),
        'netPrice': str(txn.net_price),
        'tradeDate': _iso(txn.trade_date),
        'settlementDate': _iso(txn.settlement_date),
        'timestamp': _iso(txn.timestamp),
    }


def transaction_from_dict(raw: dict) -> Transaction:
    if not isinstance(raw, dict):
        raise DecodeFailureError(f"Transaction entry must be an object, got {type(raw).__name__}")
    try:
        txn_id = int(raw['id'])
        tx_type = str(raw['type']).upper()
        symbol = str(raw['symbol']).upper()
    except KeyError as e:
        raise DecodeFailureError(f"Transaction missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise DecodeFailureError(f"Invalid transaction id: {raw.get('id')!r}") from e

    price = _dec(raw.get('price'), 'price')
    fee = normalize_fee_percent(raw.get('feePercent'))
    net_raw = _first(raw, 'netPrice', 'adjustedPrice')
    net = fee_adjusted_price(tx_type, price, fee) if net_raw is _MISSING else _dec(net_raw, 'netPrice')

    trade_date = _date(raw.get('tradeDate'), 'tradeDate')
    settlement_raw = raw.get('settlementDate')
    settlement = calculate_settlement_date(trade_date) if settlement_raw is None else _date(settlement_raw, 'settlementDate')

    return Transaction(
        id=txn_id,
        type=tx_type,
        symbol=symbol,
        quantity=_dec(raw.get('quantity'), 'quantity'),
        price=price,
        fee_percent=fee,
        net_price=net,
        trade_date=trade_date,
        settlement_date=settlement,
        timestamp=_datetime(raw.get('timestamp'), trade_date),
    )


# ====================================================================================
# REALIZED SALES
# ====================================================================================

def consumption_to_dict(record: LotConsumption) -> dict:
    return {
        'purchaseDate': _iso(record.purchase_date),
        'quantity': str(record.quantity),
        'costPerShare': str(record.cost_per_unit),
        'grossCostPerShare': str(record.gross_cost_per_unit),
        'feePercent': str(record.fee_percent),
        'costBasis': str(record.cost_basis),
        'holdingDays': record.holding_period.days,
    }


def consumption_from_dict(raw: dict, sale_date: date, sale_fee: Decimal) -> LotConsumption:
    if not isinstance(raw, dict):
        raise DecodeFailureError(f"lotsUsed entry must be an object, got {type(raw).__name__}")

    purchase_date = _date(raw.get('purchaseDate'), 'purchaseDate')
    cost = _dec(_first(raw, 'costPerShare', 'price'), 'costPerShare')
    gross_raw = _first(raw, 'grossCostPerShare')
    gross = cost if gross_raw is _MISSING else _dec(gross_raw, 'grossCostPerShare')
    fee = normalize_fee_percent(raw.get('feePercent'), default=sale_fee)
    if cost == gross and fee > 0:
        cost = fee_adjusted_price('BUY', gross, fee)
        logger.warning(f"[MIGRATION] Unadjusted consumption cost {gross}; recomputed {cost} at {fee}% fee")

    return LotConsumption(
        purchase_date=purchase_date,
        quantity=_dec(raw.get('quantity'), 'quantity'),
        cost_per_unit=cost,
        gross_cost_per_unit=gross,
        fee_percent=fee,
        holding_period=get_holding_period(purchase_date, sale_date),
    )


def realized_sale_to_dict(sale: RealizedSale) -> dict:
    return {
        'symbol': sale.symbol,
        'quantitySold': str(sale.quantity_sold),
        'sellPrice': str(sale.sell_price),
        'grossSellPrice': str(sale.gross_sell_price),
        'feePercent': str(sale.fee_percent),
        'saleProceeds': str(sale.sale_proceeds),
        'totalCostBasis': str(sale.total_cost_basis),
        'capitalGain': str(sale.capital_gain),
        'saleDate': _iso(sale.sale_date),
        'transactionId': sale.transaction_id,
        'lotsUsed': [consumption_to_dict(lot) for lot in sale.lots_used],
    }


def realized_sale_from_dict(raw: dict) -> RealizedSale:
    if not isinstance(raw, dict):
        raise DecodeFailureError(f"Realized gain entry must be an object, got {type(raw).__name__}")
    if not raw.get('symbol'):
        raise DecodeFailureError("Realized gain missing symbol")

    fee = normalize_fee_percent(raw.get('feePercent'))
    net = _dec(raw.get('sellPrice'), 'sellPrice')
    gross_raw = _first(raw, 'grossSellPrice')
    gross = net if gross_raw is _MISSING else _dec(gross_raw, 'grossSellPrice')
    if net == gross and fee > 0:
        net = fee_adjusted_price('SELL', gross, fee)
        logger.warning(f"[MIGRATION] Unadjusted sell price {gross}; recomputed net {net} at {fee}% fee")

    sale_date = _date(raw.get('saleDate'), 'saleDate')
    lots_raw = raw.get('lotsUsed') or []
    if not isinstance(lots_raw, list):
        raise DecodeFailureError("lotsUsed must be a list")
    lots_used = tuple(consumption_from_dict(lot, sale_date, fee) for lot in lots_raw)

    quantity_sold = _dec(raw.get('quantitySold'), 'quantitySold')
    consumed = sum((lot.quantity for lot in lots_used), Decimal(0))
    if lots_used and consumed != quantity_sold:
        logger.warning(f"[MIGRATION] {raw['symbol']} sale lists {consumed} consumed shares for {quantity_sold} sold")

    txn_id = raw.get('transactionId')
    return RealizedSale(
        symbol=str(raw['symbol']).upper(),
        quantity_sold=quantity_sold,
        sell_price=net,
        gross_sell_price=gross,
        fee_percent=fee,
        sale_date=sale_date,
        lots_used=lots_used,
        is_simulation=False,
        transaction_id=int(txn_id) if txn_id is not None else None,
    )


# ====================================================================================
# FULL SNAPSHOT
# ====================================================================================

def decode_holdings(raw) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise DecodeFailureError("holdings must be an object keyed by symbol")
    holdings = {}
    for symbol, lots in raw.items():
        if not isinstance(lots, list):
            raise DecodeFailureError(f"holdings[{symbol!r}] must be a list")
        decoded = [lot_from_dict(lot) for lot in lots]
        decoded = [lot for lot in decoded if lot.quantity > 0]
        decoded.sort(key=lambda lot: lot.settlement_date)
        if decoded:
            holdings[str(symbol).upper()] = decoded
    return holdings


def decode_list(raw, decoder, name) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DecodeFailureError(f"{name} must be a list")
    return [decoder(item) for item in raw]
