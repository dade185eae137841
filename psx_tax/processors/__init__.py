"""Broker statement processors.

Import from psx_tax.processors rather than the individual modules.
"""

from psx_tax.processors.csv_importer import ImportResult, import_broker_csv

__all__ = [
    "ImportResult",
    "import_broker_csv",
]
