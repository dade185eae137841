"""
================================================================================
PYTEST CONFIGURATION
================================================================================

Pytest configuration and shared fixtures for the entire test suite.

Global Setup:
    - Tests run with the working directory switched to a temp directory, so
      default paths (configs/, data/, outputs/logs/) never touch the project
    - Project root stays on sys.path for psx_tax and cli imports

Fixtures:
    - ledger: empty FIFOLedger with the default 0.5% fee
    - worked_ledger: OGDC buys from the reference example, not yet sold
    - session: PortfolioSession backed by a SnapshotStore under tmp_path
    - config_file: config.json under tmp_path pointing storage at tmp_path
================================================================================
"""
import json
import os
import shutil
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure project root is on sys.path for psx_tax and cli imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

_TEST_WORK_DIR = None
_ORIGINAL_CWD = None


def pytest_configure(config):
    """
    Hook called before test collection starts.
    Switch into a scratch directory BEFORE psx_tax.utils.constants is imported,
    since it resolves BASE_DIR from the working directory.
    """
    global _TEST_WORK_DIR, _ORIGINAL_CWD
    _TEST_WORK_DIR = Path(tempfile.mkdtemp(prefix="psx_tax_test_"))
    _ORIGINAL_CWD = os.getcwd()
    os.chdir(_TEST_WORK_DIR)


def pytest_unconfigure(config):
    """Restore original directory and clean up."""
    if _ORIGINAL_CWD:
        os.chdir(_ORIGINAL_CWD)
    if _TEST_WORK_DIR and _TEST_WORK_DIR.exists():
        shutil.rmtree(_TEST_WORK_DIR, ignore_errors=True)


@pytest.fixture
def ledger():
    from psx_tax.core.ledger import FIFOLedger
    return FIFOLedger()


@pytest.fixture
def worked_ledger(ledger):
    """BUY 100 @ 100 on D and BUY 100 @ 120 on D+10, both at 0.5% fee."""
    ledger.add_transaction('BUY', 'OGDC', 100, 100, '2024-01-01', 0.5)
    ledger.add_transaction('BUY', 'OGDC', 100, 120, '2024-01-11', 0.5)
    return ledger


@pytest.fixture
def session(tmp_path):
    from psx_tax.core.session import PortfolioSession
    from psx_tax.core.storage import SnapshotStore
    store = SnapshotStore(data_file=tmp_path / 'data' / 'psx.json', backup_dir=tmp_path / 'backups')
    return PortfolioSession(store=store)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'configs' / 'config.json'
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({
        "ledger": {"default_fee_percent": 0.5, "settlement_days": 2},
        "tax": {"filer": False},
        "storage": {
            "data_file": str(tmp_path / 'data' / 'psx_tax_data.json'),
            "backup_dir": str(tmp_path / 'data' / 'backups'),
            "keep_backups": 5,
            "auto_backup": True,
        },
    }, indent=4))
    return path
