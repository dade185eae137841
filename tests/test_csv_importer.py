"""
Broker CSV import tests.
"""

from decimal import Decimal

import pytest

from psx_tax.core.errors import InvalidInputError
from psx_tax.processors.csv_importer import detect_columns, import_broker_csv


def _write(tmp_path, text, name='trades.csv'):
    path = tmp_path / name
    path.write_text(text)
    return path


def test_detect_columns_by_substring():
    cols = detect_columns(['Trade Date', 'Transaction Type', 'Scrip', 'Qty', 'Rate', 'Fee %'])
    assert cols == {
        'date': 'Trade Date',
        'type': 'Transaction Type',
        'symbol': 'Scrip',
        'quantity': 'Qty',
        'price': 'Rate',
        'fee': 'Fee %',
    }


def test_exact_header_beats_substring_match():
    cols = detect_columns(['Transaction Date', 'Type', 'Symbol', 'Quantity', 'Price'])
    assert cols['type'] == 'Type'
    assert cols['date'] == 'Transaction Date'


def test_import_with_transaction_date_header(tmp_path, ledger):
    path = _write(tmp_path, (
        "Transaction Date,Type,Symbol,Quantity,Price\n"
        "2024-01-01,BUY,OGDC,100,100\n"
    ))
    result = import_broker_csv(ledger, path)
    assert result.success_count == 1
    assert ledger.get_total_quantity('OGDC') == Decimal(100)


def test_missing_columns_rejected():
    with pytest.raises(InvalidInputError, match="price"):
        detect_columns(['Date', 'Type', 'Symbol', 'Quantity'])


def test_import_in_trade_date_order(tmp_path, ledger):
    path = _write(tmp_path, (
        "Date,Type,Symbol,Quantity,Price\n"
        "2024-02-01,SELL,ogdc,50,150\n"
        "2024-01-01,BUY,OGDC,100,100\n"
    ))
    result = import_broker_csv(ledger, path)
    assert result.success_count == 2
    assert result.error_count == 0
    assert ledger.get_total_quantity('OGDC') == Decimal(50)
    assert [t.type for t in ledger.get_transactions()] == ['BUY', 'SELL']


def test_bad_rows_reported_with_line_numbers(tmp_path, ledger):
    path = _write(tmp_path, (
        "Date,Type,Symbol,Quantity,Price\n"
        "2024-01-01,BUY,OGDC,100,100\n"
        "2024-01-02,HOLD,OGDC,10,100\n"
        "2024-01-03,BUY,OGDC,abc,100\n"
        "2024-01-04,SELL,HUBC,10,100\n"
        "2024-01-05,BUY,PSO,10,200\n"
    ))
    result = import_broker_csv(ledger, path)
    assert result.success_count == 2
    assert result.error_count == 3
    assert result.errors[0].startswith("Line 3:")
    assert result.errors[1].startswith("Line 4:")
    assert result.errors[2].startswith("Line 5:")
    assert sorted(ledger.get_symbols()) == ['OGDC', 'PSO']


def test_fee_column_and_default_fee(tmp_path, ledger):
    path = _write(tmp_path, (
        "Date,Type,Symbol,Shares,Price,Fee\n"
        "2024-01-01,BUY,OGDC,10,100,1\n"
        "2024-01-02,BUY,HUBC,10,100,\n"
    ))
    import_broker_csv(ledger, path, fee_percent=0)
    txns = ledger.get_transactions()
    assert txns[0].net_price == Decimal(101)
    assert txns[1].net_price == Decimal(100)


def test_empty_file(tmp_path, ledger):
    path = _write(tmp_path, "Date,Type,Symbol,Quantity,Price\n")
    with pytest.raises(InvalidInputError):
        import_broker_csv(ledger, path)


def test_missing_file(tmp_path, ledger):
    with pytest.raises(FileNotFoundError):
        import_broker_csv(ledger, tmp_path / 'none.csv')
