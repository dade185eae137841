"""
Portfolio session: one object wiring the ledger, tax calculator, corporate
actions, what-if engine and snapshot store together, the way the CLI uses them.
"""

import logging
from pathlib import Path
from typing import Optional

from psx_tax.core.corporate_actions import CorporateActionsManager
from psx_tax.core.errors import DecodeFailureError
from psx_tax.core.ledger import FIFOLedger
from psx_tax.core.storage import SnapshotStore
from psx_tax.core.tax_calculator import TaxCalculator
from psx_tax.core.what_if import WhatIfEngine
from psx_tax.utils.constants import BASE_DIR, DEFAULT_KEEP_BACKUPS

logger = logging.getLogger("psx_tax_engine")


class PortfolioSession:
    def __init__(self, store: Optional[SnapshotStore] = None, ledger: Optional[FIFOLedger] = None,
                 is_filer=False, auto_backup=True, keep_backups=DEFAULT_KEEP_BACKUPS):
        self.ledger = ledger or FIFOLedger()
        self.calculator = TaxCalculator(is_filer=is_filer)
        self.corporate_actions = CorporateActionsManager(self.ledger)
        self.what_if = WhatIfEngine(self.ledger, self.calculator)
        self.store = store or SnapshotStore()
        self.auto_backup = bool(auto_backup)
        self.keep_backups = int(keep_backups)

    @classmethod
    def from_config(cls, config: dict) -> "PortfolioSession":
        ledger_cfg = config.get('ledger', {})
        storage_cfg = config.get('storage', {})

        def _path(value):
            path = Path(value)
            return path if path.is_absolute() else BASE_DIR / path

        return cls(
            store=SnapshotStore(
                data_file=_path(storage_cfg.get('data_file', 'data/psx_tax_data.json')),
                backup_dir=_path(storage_cfg.get('backup_dir', 'data/backups')),
            ),
            ledger=FIFOLedger(
                default_fee_percent=ledger_cfg.get('default_fee_percent', '0.5'),
                settlement_days=ledger_cfg.get('settlement_days', 2),
            ),
            is_filer=config.get('tax', {}).get('filer', False),
            auto_backup=storage_cfg.get('auto_backup', True),
            keep_backups=storage_cfg.get('keep_backups', DEFAULT_KEEP_BACKUPS),
        )

    def snapshot(self) -> dict:
        data = self.ledger.export_data()
        data['corporateActions'] = self.corporate_actions.export_data()
        data['settings'] = {'isFiler': self.calculator.is_filer}
        return data

    def restore(self, data: dict):
        """
        Load a combined snapshot. Ledger and corporate actions are decoded
        into scratch objects first so a corrupt snapshot changes nothing.
        """
        if not isinstance(data, dict):
            raise DecodeFailureError(f"Snapshot must be an object, got {type(data).__name__}")
        scratch = FIFOLedger(self.ledger.default_fee_percent, self.ledger.settlement_days)
        scratch.import_data(data)
        actions = CorporateActionsManager(scratch)
        actions.import_data(data.get('corporateActions'))

        self.ledger.holdings = scratch.holdings
        self.ledger.transactions = scratch.transactions
        self.ledger.realized_gains = scratch.realized_gains
        self.ledger._next_id = scratch._next_id
        self.corporate_actions.actions = actions.actions
        self.corporate_actions._next_id = actions._next_id

        settings = data.get('settings') or {}
        if 'isFiler' in settings:
            self.calculator.is_filer = bool(settings['isFiler'])

    def load(self) -> bool:
        """Restore from the store; False when nothing was saved yet."""
        data = self.store.load()
        if data is None:
            return False
        self.restore(data)
        return True

    def restore_backup(self, path) -> dict:
        """Restore a backup into this session; a backup that fails to decode is never written."""
        return self.store.restore_backup(path, apply=self.restore)

    def save(self, backup=None):
        data = self.snapshot()
        if backup is None:
            backup = self.auto_backup
        if backup:
            self.store.create_backup(data)
            self.store.cleanup_old_backups(self.keep_backups)
        self.store.save(data)

    def reset(self):
        self.ledger.reset()
        self.corporate_actions.reset()
        self.store.clear()
        logger.info("Session reset; stored data cleared")
