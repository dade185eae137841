"""
================================================================================
CORPORATE ACTIONS - Bonus Shares and Right Issues
================================================================================

Adjusts a symbol's FIFO lots for PSX corporate actions and keeps a
reversible record of every adjustment.

BONUS:
    Each lot receives floor(quantity * ratio) new shares. The lot's cost is
    spread over the original plus bonus shares, and the bonus shares become a
    sub-lot dated on the ex-date. Total cost basis of the symbol is unchanged.

RIGHT:
    floor(total quantity * ratio) shares are subscribed at the offer price as
    one new lot dated on the subscription date (or ex-date when not given).

Reversal:
    Every record keeps a deep copy of the lots as they were before the action.
    Reversing puts that copy back; any trades made in between are lost, which
    is logged as a warning.
================================================================================
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from psx_tax.core.errors import (
    ActionNotFoundError,
    AlreadyReversedError,
    DecodeFailureError,
    InvalidInputError,
    InvalidParametersError,
    UnknownSymbolError,
)
from psx_tax.core.models import Lot
from psx_tax.core.serialization import lot_from_dict, lot_to_dict
from psx_tax.core.settlement import parse_date
from psx_tax.decimal_utils import floor_shares, to_decimal
from psx_tax.utils.constants import CORPORATE_ACTION_TYPES

logger = logging.getLogger("psx_tax_engine")


def parse_ratio(ratio) -> Decimal:
    """
    Turn a ratio into a per-share multiplier.

    "20%" -> 0.2, "1:5" -> 0.2 (one new share per five held), "0.2" -> 0.2.

    Raises:
        InvalidParametersError: missing, malformed or non-positive ratio
    """
    if ratio is None or isinstance(ratio, bool):
        raise InvalidParametersError("Ratio is required")
    if isinstance(ratio, (int, float, Decimal)):
        value = to_decimal(ratio, default=None)
    else:
        text = ''.join(str(ratio).split())
        if not text:
            raise InvalidParametersError("Ratio is required")
        try:
            if text.endswith('%'):
                value = Decimal(text[:-1]) / Decimal(100)
            elif ':' in text:
                left, right = text.split(':', 1)
                value = Decimal(left) / Decimal(right)
            else:
                value = Decimal(text)
        except (InvalidOperation, ZeroDivisionError) as e:
            raise InvalidParametersError(f"Invalid ratio: {ratio!r}") from e

    if value is None or not value.is_finite() or value <= 0:
        raise InvalidParametersError(f"Ratio must be positive, got {ratio!r}")
    return value


@dataclass
class CorporateActionRecord:
    id: int
    symbol: str
    type: str
    details: dict
    timestamp: datetime
    original_lots: List[Lot]
    result: dict = field(default_factory=dict)
    applied: bool = True
    reversed_at: Optional[datetime] = None
    applied_lots: List[Lot] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'symbol': self.symbol,
            'type': self.type,
            'details': {k: _json_value(v) for k, v in self.details.items()},
            'timestamp': self.timestamp.isoformat(),
            'originalLots': [lot_to_dict(lot) for lot in self.original_lots],
            'appliedLots': [lot_to_dict(lot) for lot in self.applied_lots],
            'result': {k: _json_value(v) for k, v in self.result.items()},
            'applied': self.applied,
            'reversedAt': self.reversed_at.isoformat() if self.reversed_at else None,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "CorporateActionRecord":
        if not isinstance(raw, dict):
            raise DecodeFailureError(f"Corporate action must be an object, got {type(raw).__name__}")
        try:
            return cls(
                id=int(raw['id']),
                symbol=str(raw['symbol']).upper(),
                type=str(raw['type']).upper(),
                details=dict(raw.get('details') or {}),
                timestamp=datetime.fromisoformat(raw['timestamp']),
                original_lots=[lot_from_dict(lot) for lot in raw.get('originalLots') or []],
                result=dict(raw.get('result') or {}),
                applied=bool(raw.get('applied', True)),
                reversed_at=datetime.fromisoformat(raw['reversedAt']) if raw.get('reversedAt') else None,
                applied_lots=[lot_from_dict(lot) for lot in raw.get('appliedLots') or []],
            )
        except KeyError as e:
            raise DecodeFailureError(f"Corporate action missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise DecodeFailureError(f"Invalid corporate action: {e}") from e


def _json_value(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _lots_signature(lots):
    return [(lot.quantity, lot.net_price, lot.settlement_date) for lot in lots]


class CorporateActionsManager:
    def __init__(self, ledger):
        self.ledger = ledger
        self.actions: List[CorporateActionRecord] = []
        self._next_id = 1

    def apply_corporate_action(self, symbol, action_type, details=None) -> CorporateActionRecord:
        """
        Apply a BONUS or RIGHT action to a held symbol.

        details keys: ratio, ex_date, and for RIGHT also price and optionally
        subscription_date.

        Raises:
            UnknownSymbolError: nothing held in the symbol
            InvalidParametersError: missing/invalid parameters or unknown type
        """
        details = dict(details or {})
        symbol = str(symbol or '').strip().upper()
        action_type = str(action_type or '').strip().upper()
        if not symbol:
            raise InvalidParametersError("Symbol is required")
        if action_type not in CORPORATE_ACTION_TYPES:
            raise InvalidParametersError(f"Unknown corporate action type: {action_type!r}")

        original = self.ledger.get_lots(symbol)
        if not original:
            raise UnknownSymbolError(f"No holdings found for {symbol}")

        ratio = parse_ratio(details.get('ratio'))
        ex_date = self._required_date(details.get('ex_date'), 'ex-date')

        if action_type == 'BONUS':
            new_lots, result = self._bonus_lots(original, ratio, ex_date)
            clean = {'ratio': details.get('ratio'), 'ex_date': ex_date}
        else:
            price = to_decimal(details.get('price'), default=None)
            if price is None or not price.is_finite() or price <= 0:
                raise InvalidParametersError(f"Subscription price must be positive, got {details.get('price')!r}")
            sub_raw = details.get('subscription_date')
            subscription = self._required_date(sub_raw, 'subscription date') if sub_raw else ex_date
            new_lots, result = self._right_lots(original, ratio, price, subscription)
            clean = {'ratio': details.get('ratio'), 'ex_date': ex_date, 'price': price,
                     'subscription_date': subscription}

        record = CorporateActionRecord(
            id=self._next_id,
            symbol=symbol,
            type=action_type,
            details=clean,
            timestamp=datetime.now(),
            original_lots=original,
            result=result,
            applied_lots=copy.deepcopy(new_lots),
        )
        self.ledger.replace_lots(symbol, new_lots)
        self.actions.append(record)
        self._next_id += 1
        logger.info(f"[CORPORATE ACTION] #{record.id} {action_type} {symbol}: {result['summary']}")
        return record

    def apply_bonus(self, symbol, ratio, ex_date):
        return self.apply_corporate_action(symbol, 'BONUS', {'ratio': ratio, 'ex_date': ex_date})

    def apply_right_issue(self, symbol, ratio, price, ex_date, subscription_date=None):
        return self.apply_corporate_action(symbol, 'RIGHT', {
            'ratio': ratio,
            'price': price,
            'ex_date': ex_date,
            'subscription_date': subscription_date,
        })

    @staticmethod
    def _required_date(value, name) -> date:
        try:
            return parse_date(value, name)
        except InvalidInputError as e:
            raise InvalidParametersError(str(e)) from e

    @staticmethod
    def _bonus_lots(lots, ratio, ex_date):
        new_lots = []
        added = Decimal(0)
        for lot in lots:
            bonus = floor_shares(lot.quantity * ratio)
            if bonus <= 0:
                new_lots.append(lot.copy())
                continue
            scale = lot.quantity / (lot.quantity + bonus)
            gross = lot.gross_price * scale
            net = lot.net_price * scale
            adjusted = lot.copy()
            adjusted.gross_price = gross
            adjusted.net_price = net
            new_lots.append(adjusted)
            new_lots.append(Lot(
                quantity=bonus,
                gross_price=gross,
                fee_percent=lot.fee_percent,
                settlement_date=ex_date,
                net_price=net,
                transaction_id=lot.transaction_id,
                source='BONUS',
            ))
            added += bonus

        if added <= 0:
            raise InvalidParametersError(f"Ratio {ratio} grants no bonus shares on current holdings")
        new_lots.sort(key=lambda lot: lot.settlement_date)
        return new_lots, {
            'shares_added': added,
            'cost_added': Decimal(0),
            'summary': f"{added} bonus shares added at zero cost",
        }

    @staticmethod
    def _right_lots(lots, ratio, price, subscription):
        total = sum((lot.quantity for lot in lots), Decimal(0))
        entitled = floor_shares(total * ratio)
        if entitled <= 0:
            raise InvalidParametersError(f"Ratio {ratio} grants no right shares on {total} held")
        new_lots = [lot.copy() for lot in lots]
        new_lots.append(Lot(
            quantity=entitled,
            gross_price=price,
            fee_percent=Decimal(0),
            settlement_date=subscription,
            net_price=price,
            source='RIGHT',
        ))
        new_lots.sort(key=lambda lot: lot.settlement_date)
        cost = entitled * price
        return new_lots, {
            'shares_added': entitled,
            'cost_added': cost,
            'summary': f"{entitled} right shares subscribed at {price} (cost {cost})",
        }

    def reverse_corporate_action(self, action_id) -> CorporateActionRecord:
        record = self._find(action_id)
        if not record.applied:
            raise AlreadyReversedError(f"Corporate action {record.id} has already been reversed")

        current = self.ledger.get_lots(record.symbol)
        if record.applied_lots and _lots_signature(current) != _lots_signature(record.applied_lots):
            logger.warning(
                f"[CORPORATE ACTION] {record.symbol} lots changed since action #{record.id}; "
                f"reversal restores the pre-action lots and discards later changes"
            )
        self.ledger.replace_lots(record.symbol, record.original_lots)
        record.applied = False
        record.reversed_at = datetime.now()
        logger.info(f"[CORPORATE ACTION] Reversed #{record.id} {record.type} {record.symbol}")
        return record

    def _find(self, action_id) -> CorporateActionRecord:
        try:
            wanted = int(action_id)
        except (TypeError, ValueError):
            raise ActionNotFoundError(f"Corporate action not found: {action_id!r}") from None
        for record in self.actions:
            if record.id == wanted:
                return record
        raise ActionNotFoundError(f"Corporate action not found: {action_id!r}")

    def get_corporate_actions(self) -> List[CorporateActionRecord]:
        return list(self.actions)

    def get_summary(self) -> Dict[str, object]:
        by_type = {t: 0 for t in CORPORATE_ACTION_TYPES}
        for record in self.actions:
            by_type[record.type] = by_type.get(record.type, 0) + 1
        applied = sum(1 for record in self.actions if record.applied)
        return {
            'total': len(self.actions),
            'applied': applied,
            'reversed': len(self.actions) - applied,
            'by_type': by_type,
        }

    def export_data(self) -> list:
        return [record.to_dict() for record in self.actions]

    def import_data(self, records):
        if records is None:
            records = []
        if not isinstance(records, list):
            raise DecodeFailureError("corporateActions must be a list")
        decoded = [CorporateActionRecord.from_dict(raw) for raw in records]
        self.actions = decoded
        self._next_id = max((record.id for record in decoded), default=0) + 1

    def reset(self):
        self.actions = []
        self._next_id = 1
