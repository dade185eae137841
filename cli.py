#!/usr/bin/env python3
"""
================================================================================
CLI - Command Line Interface
================================================================================

Provides unified command-line access to the PSX capital-gains tax engine:
    - Recording BUY/SELL trades against the FIFO ledger
    - Holdings, realized gains and tax reports
    - What-if analysis (sale simulation, timing, filer comparison)
    - Corporate actions (bonus shares, right issues) and their reversal
    - Broker CSV import, JSON export/import, backups

Features:
    - Rich text formatting with ANSI colors
    - Argument parsing for all major operations
    - Error handling with user-friendly messages

Every command loads the saved portfolio, runs, and saves it back when it
changed anything.

Usage:
    python cli.py [command] [options]
    python cli.py --help
================================================================================
"""

import sys
import argparse
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from psx_tax.core.errors import DecodeFailureError, TaxEngineError
from psx_tax.core.session import PortfolioSession
from psx_tax.decimal_utils import round_decimal
from psx_tax.processors.csv_importer import import_broker_csv
from psx_tax.utils.config import load_config, save_config
from psx_tax.utils.constants import BASE_DIR, CONFIG_FILE
from psx_tax.utils.logger import set_run_context


# ANSI color codes
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    UNDERLINE = '\033[4m'


def _pretty_json(payload: Any):
    """Render JSON to stdout with stable formatting."""
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _require_file(path: Path, label: str) -> Optional[Path]:
    """Validate a file exists and return it; emit friendly error otherwise."""
    resolved = path if path.is_absolute() else BASE_DIR / path
    if resolved.exists():
        return resolved
    print_error(f"{label} not found at {resolved}")
    return None


def _load_json(path: Path) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _money(value) -> str:
    return f"Rs. {round_decimal(value):,.2f}"


def _pct(rate) -> str:
    return f"{Decimal(rate) * 100:.2f}%"


def _qty(value) -> str:
    return f"{Decimal(value).normalize():f}"


def print_header(text):
    """Print formatted header"""
    print(f"\n{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.CYAN}{text:^70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}\n")

def print_success(text):
    """Print success message"""
    print(f"{Colors.GREEN}✓{Colors.ENDC} {text}")

def print_error(text):
    """Print error message"""
    print(f"{Colors.RED}✗{Colors.ENDC} {text}")

def print_info(text):
    """Print info message"""
    print(f"{Colors.CYAN}ℹ{Colors.ENDC} {text}")

def print_warning(text):
    """Print warning message"""
    print(f"{Colors.YELLOW}⚠{Colors.ENDC} {text}")


def _config_path(args) -> Path:
    return Path(args.config) if getattr(args, 'config', None) else CONFIG_FILE


def _open_session(args, load=True) -> PortfolioSession:
    """Build a session from config and, unless told not to, load whatever was saved."""
    session = PortfolioSession.from_config(load_config(_config_path(args)))
    if load:
        session.load()
    return session


def _today(value) -> str:
    return value if value else date.today().isoformat()


# ==================================
# TRADES
# ==================================

def cmd_buy(args):
    session = _open_session(args)
    try:
        txn = session.ledger.add_transaction('BUY', args.symbol, args.quantity, args.price,
                                             _today(args.date), args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    print_success(f"BUY {_qty(txn.quantity)} {txn.symbol} @ {_money(txn.price)} "
                  f"(net {_money(txn.net_price)}, settles {txn.settlement_date})")
    return True


def cmd_sell(args):
    session = _open_session(args)
    try:
        sale = session.ledger.add_transaction('SELL', args.symbol, args.quantity, args.price,
                                              _today(args.date), args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    tax = session.calculator.calculate_tax_for_sale(sale)
    print_success(f"SELL {_qty(sale.quantity_sold)} {sale.symbol} @ {_money(sale.gross_sell_price)}")
    _print_sale(sale, tax)
    return True


def _print_sale(sale, tax):
    print(f"  Settlement:      {sale.sale_date}")
    print(f"  Sale Proceeds:   {_money(sale.sale_proceeds)}")
    print(f"  Cost Basis:      {_money(sale.total_cost_basis)}")
    print(f"  Capital Gain:    {_money(sale.capital_gain)}")
    print(f"  Tax:             {_money(tax.total_tax)} (effective {_pct(tax.effective_tax_rate)})")
    print(f"  Net Profit:      {_money(tax.net_profit)}")
    print(f"\n{Colors.BOLD}Lots used (FIFO):{Colors.ENDC}")
    for lot in tax.tax_by_lot:
        print(f"  • {_qty(lot.quantity)} @ {_money(lot.cost_per_unit)} from {lot.purchase_date} "
              f"({lot.holding_days} days) -> {lot.rate_label}, tax {_money(lot.tax)}")


def cmd_simulate(args):
    print_header("SALE SIMULATION")
    session = _open_session(args)
    try:
        analysis = session.what_if.analyze_sale(args.symbol, args.quantity, args.price,
                                                _today(args.date), args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    _print_sale(analysis.sale, analysis.tax)
    print(f"\n  You'll Receive:  {_money(analysis.net_receipt)}")
    print(f"  Remaining:       {_qty(analysis.remaining_quantity)} shares")
    for note in analysis.notes:
        print_info(note)
    return True


# ==================================
# REPORTS
# ==================================

def cmd_holdings(args):
    print_header("CURRENT HOLDINGS")
    session = _open_session(args)
    holdings = session.ledger.get_holdings()
    if not holdings:
        print_info("No holdings")
        return True
    for symbol, summary in sorted(holdings.items()):
        print(f"{Colors.BOLD}{symbol}{Colors.ENDC}: {_qty(summary.total_quantity)} shares, "
              f"cost {_money(summary.total_cost_basis)}, avg {_money(summary.average_cost)}")
        for lot in summary.lots:
            source = '' if lot.source == 'BUY' else f" [{lot.source}]"
            print(f"    {_qty(lot.quantity)} @ {_money(lot.net_price)} settled {lot.settlement_date}{source}")
        progress = session.what_if.oldest_lot_milestone(symbol)
        if progress:
            print(f"    Tax bracket: {progress['milestone'].message}")
    return True


def cmd_gains(args):
    print_header("REALIZED GAINS")
    session = _open_session(args)
    sales = session.ledger.get_realized_gains()
    if not sales:
        print_info("No realized sales")
        return True
    for sale in sales:
        tax = session.calculator.calculate_tax_for_sale(sale)
        print(f"{sale.sale_date} {sale.symbol}: sold {_qty(sale.quantity_sold)} "
              f"gain {_money(sale.capital_gain)} tax {_money(tax.total_tax)}")
    return True


def cmd_tax(args):
    print_header("TAX SUMMARY")
    session = _open_session(args)
    agg = session.calculator.calculate_aggregate_tax(session.ledger.get_realized_gains())
    status = 'Filer' if session.calculator.is_filer else 'Non-filer'
    print(f"  Status:          {status}")
    print(f"  Sales:           {agg.sale_count}")
    print(f"  Total Proceeds:  {_money(agg.total_proceeds)}")
    print(f"  Total Cost:      {_money(agg.total_cost_basis)}")
    print(f"  Gains:           {_money(agg.total_gain)}")
    print(f"  Losses:          {_money(agg.total_loss)}")
    print(f"  Net Gain:        {_money(agg.net_gain)}")
    print(f"  Total Tax:       {_money(agg.total_tax)}")
    if agg.super_tax_advisory:
        print_warning("Net gain exceeds Rs. 150,000,000: super tax (Section 4C) may apply")
    return True


def cmd_filer(args):
    session = _open_session(args)
    if args.status is None:
        print_info(f"Current status: {'filer' if session.calculator.is_filer else 'non-filer'}")
        return True
    session.calculator.set_filer_status(args.status == 'on')
    session.save(backup=False)
    print_success(f"Filer status set to {'filer' if session.calculator.is_filer else 'non-filer'}")
    return True


# ==================================
# WHAT-IF
# ==================================

def cmd_timing(args):
    print_header("OPTIMAL SALE TIMING")
    session = _open_session(args)
    try:
        analysis = session.what_if.analyze_optimal_timing(args.symbol, args.quantity, args.price,
                                                          args.as_of, args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    for s in analysis.scenarios:
        marker = f" {Colors.GREEN}<- recommended{Colors.ENDC}" if s is analysis.recommended else ''
        print(f"  {s.label:<32} gain {_money(s.capital_gain)}  tax {_money(s.tax)}  "
              f"net {_money(s.net_profit)}{marker}")
    if analysis.savings_vs_today > 0:
        print_success(f"Waiting until {analysis.recommended.sale_date} saves {_money(analysis.savings_vs_today)}")
    else:
        print_info("Selling today is already optimal")
    return True


def cmd_compare_filer(args):
    print_header("FILER VS NON-FILER")
    session = _open_session(args)
    try:
        sale = session.ledger.calculate_sale(args.symbol, args.quantity, args.price,
                                             _today(args.date), args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    comparison = session.what_if.compare_filer_status(sale)
    print(f"  Filer Tax:       {_money(comparison.filer_tax)}")
    print(f"  Non-filer Tax:   {_money(comparison.non_filer_tax)}")
    print(f"  Savings:         {_money(comparison.savings_by_being_filer)}")
    print_info(comparison.recommendation)
    return True


# ==================================
# CORPORATE ACTIONS
# ==================================

def cmd_bonus(args):
    session = _open_session(args)
    try:
        record = session.corporate_actions.apply_bonus(args.symbol, args.ratio, args.ex_date)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    print_success(f"Action #{record.id}: {record.result['summary']}")
    return True


def cmd_right(args):
    session = _open_session(args)
    try:
        record = session.corporate_actions.apply_right_issue(
            args.symbol, args.ratio, args.price, args.ex_date, args.subscription_date)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    print_success(f"Action #{record.id}: {record.result['summary']}")
    return True


def cmd_reverse_action(args):
    session = _open_session(args)
    try:
        record = session.corporate_actions.reverse_corporate_action(args.action_id)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    print_success(f"Reversed action #{record.id} ({record.type} {record.symbol})")
    return True


def cmd_actions(args):
    print_header("CORPORATE ACTIONS")
    session = _open_session(args)
    actions = session.corporate_actions.get_corporate_actions()
    if not actions:
        print_info("No corporate actions recorded")
        return True
    for record in actions:
        state = 'applied' if record.applied else 'reversed'
        print(f"  #{record.id} {record.type:<5} {record.symbol:<8} ratio {record.details.get('ratio')} "
              f"[{state}] {record.result.get('summary', '')}")
    _pretty_json(session.corporate_actions.get_summary())
    return True


# ==================================
# IMPORT / EXPORT / BACKUP
# ==================================

def cmd_import_csv(args):
    print_header("BROKER CSV IMPORT")
    csv_path = _require_file(Path(args.file), "CSV file")
    if not csv_path:
        return False
    session = _open_session(args)
    try:
        result = import_broker_csv(session.ledger, csv_path, args.fee)
    except TaxEngineError as e:
        print_error(str(e))
        return False
    session.save()
    if result.error_count:
        print_warning(f"Imported {result.success_count} transactions. {result.error_count} errors:")
        for err in result.errors:
            print(f"    {err}")
    else:
        print_success(f"Successfully imported {result.success_count} transactions from CSV")
    return True


def cmd_export(args):
    session = _open_session(args)
    target = session.store.export_to_file(session.snapshot(), Path(args.file))
    print_success(f"Exported portfolio to {target}")
    return True


def cmd_import(args):
    src_path = _require_file(Path(args.file), "Import file")
    if not src_path:
        return False
    # Import replaces the stored data, so it is never read here
    session = _open_session(args, load=False)
    try:
        data = session.store.import_from_file(src_path)
        session.restore(data)
    except TaxEngineError as e:
        print_error(f"Import failed: {e}")
        return False
    session.save()
    print_success(f"Imported portfolio from {src_path}")
    return True


def cmd_backup(args):
    session = _open_session(args)
    if args.list:
        backups = session.store.list_backups()
        if not backups:
            print_info("No backups found")
        for backup in backups:
            print(f"  • {backup['name']}  {backup['timestamp']}")
        return True
    path = session.store.create_backup(session.snapshot())
    session.store.cleanup_old_backups(session.keep_backups)
    print_success(f"Backup created: {path}")
    return True


def cmd_restore(args):
    session = _open_session(args, load=False)
    try:
        session.restore_backup(args.backup)
    except FileNotFoundError as e:
        print_error(str(e))
        return False
    except TaxEngineError as e:
        print_error(f"Restore failed: {e}")
        return False
    print_success(f"Restored backup {args.backup}")
    return True


def cmd_reset(args):
    if not args.yes:
        print_error("Reset deletes all holdings, transactions and corporate actions. Re-run with --yes")
        return False
    session = _open_session(args, load=False)
    backed_up = False
    try:
        session.load()
        session.save(backup=True)
        backed_up = True
    except DecodeFailureError as e:
        print_warning(f"Stored data is unreadable, resetting without a backup: {e}")
    session.reset()
    print_success("All portfolio data cleared" + (" (a backup was kept)" if backed_up else ""))
    return True


def cmd_config_show(args):
    _pretty_json(load_config(_config_path(args)))
    return True


def cmd_config_set(args):
    cfg_path = _require_file(Path(args.file), "Config file")
    if not cfg_path:
        return False
    data = _load_json(cfg_path)
    save_config(data, _config_path(args))
    print_success(f"Configuration updated from {cfg_path}")
    return True


def _add_trade_args(p, date_help='Trade date (default: today)'):
    p.add_argument('symbol', help='PSX symbol, e.g. OGDC')
    p.add_argument('quantity', help='Number of shares')
    p.add_argument('price', help='Price per share (PKR)')
    p.add_argument('--date', help=date_help)
    p.add_argument('--fee', help='Fee percent (default from config)')


def main():
    """Main CLI entry point"""
    set_run_context('cli')
    parser = argparse.ArgumentParser(
        description='PSX Capital Gains Tax Engine - FIFO ledger and Section 37A tax',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s buy OGDC 100 100 --date 2024-01-01
  %(prog)s sell OGDC 50 150 --date 2025-02-05
  %(prog)s simulate OGDC 50 160
  %(prog)s timing OGDC 50 160
  %(prog)s bonus OGDC 1:5 --ex-date 2025-03-01
  %(prog)s tax
        '''
    )
    parser.add_argument('--config', help='Path to config.json (default: configs/config.json)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    p = subparsers.add_parser('buy', help='Record a purchase')
    _add_trade_args(p)
    p.set_defaults(func=cmd_buy)

    p = subparsers.add_parser('sell', help='Record a sale (FIFO)')
    _add_trade_args(p)
    p.set_defaults(func=cmd_sell)

    p = subparsers.add_parser('simulate', help='Simulate a sale without recording it')
    _add_trade_args(p, 'Sale date (default: today)')
    p.set_defaults(func=cmd_simulate)

    p = subparsers.add_parser('holdings', help='Show current holdings and lots')
    p.set_defaults(func=cmd_holdings)

    p = subparsers.add_parser('gains', help='List realized sales')
    p.set_defaults(func=cmd_gains)

    p = subparsers.add_parser('tax', help='Aggregate tax on realized sales')
    p.set_defaults(func=cmd_tax)

    p = subparsers.add_parser('filer', help='Show or set filer (active taxpayer) status')
    p.add_argument('status', nargs='?', choices=['on', 'off'], help='on = filer, off = non-filer')
    p.set_defaults(func=cmd_filer)

    p = subparsers.add_parser('timing', help='Compare selling now against waiting for bracket changes')
    p.add_argument('symbol')
    p.add_argument('quantity')
    p.add_argument('price')
    p.add_argument('--as-of', dest='as_of', help='Analysis date (default: today)')
    p.add_argument('--fee', help='Fee percent')
    p.set_defaults(func=cmd_timing)

    p = subparsers.add_parser('compare-filer', help='Tax as filer vs non-filer for a sale')
    _add_trade_args(p, 'Sale date (default: today)')
    p.set_defaults(func=cmd_compare_filer)

    p = subparsers.add_parser('bonus', help='Apply bonus shares')
    p.add_argument('symbol')
    p.add_argument('ratio', help="'20%%', '1:5' or '0.2'")
    p.add_argument('--ex-date', dest='ex_date', required=True, help='Ex-date')
    p.set_defaults(func=cmd_bonus)

    p = subparsers.add_parser('right', help='Apply a right issue subscription')
    p.add_argument('symbol')
    p.add_argument('ratio', help="'20%%', '1:5' or '0.2'")
    p.add_argument('price', help='Subscription price per share')
    p.add_argument('--ex-date', dest='ex_date', required=True, help='Ex-date')
    p.add_argument('--subscription-date', dest='subscription_date', help='Subscription date (default: ex-date)')
    p.set_defaults(func=cmd_right)

    p = subparsers.add_parser('reverse-action', help='Reverse a corporate action')
    p.add_argument('action_id', type=int)
    p.set_defaults(func=cmd_reverse_action)

    p = subparsers.add_parser('actions', help='List corporate actions')
    p.set_defaults(func=cmd_actions)

    p = subparsers.add_parser('import-csv', help='Import a broker CSV statement')
    p.add_argument('file')
    p.add_argument('--fee', help='Fee percent for rows without a fee column')
    p.set_defaults(func=cmd_import_csv)

    p = subparsers.add_parser('export', help='Export portfolio to a JSON file')
    p.add_argument('file')
    p.set_defaults(func=cmd_export)

    p = subparsers.add_parser('import', help='Import portfolio from a JSON export (replaces current data)')
    p.add_argument('file')
    p.set_defaults(func=cmd_import)

    p = subparsers.add_parser('backup', help='Create or list backups')
    p.add_argument('--list', action='store_true', help='List backups instead of creating one')
    p.set_defaults(func=cmd_backup)

    p = subparsers.add_parser('restore', help='Restore a backup')
    p.add_argument('backup', help='Backup file name or path')
    p.set_defaults(func=cmd_restore)

    p = subparsers.add_parser('reset', help='Clear all portfolio data')
    p.add_argument('--yes', action='store_true', help='Confirm reset')
    p.set_defaults(func=cmd_reset)

    parser_config = subparsers.add_parser('config', help='Show or replace configuration')
    config_sub = parser_config.add_subparsers(dest='config_command')
    config_sub.required = True
    cfg_show = config_sub.add_parser('show', help='Show configuration')
    cfg_show.set_defaults(func=cmd_config_show)
    cfg_set = config_sub.add_parser('set', help='Replace configuration from a JSON file')
    cfg_set.add_argument('--file', required=True, help='Path to JSON config')
    cfg_set.set_defaults(func=cmd_config_set)

    # Parse arguments
    args = parser.parse_args()

    # If no command specified, show help
    if not args.command:
        parser.print_help()
        return 0

    # Run command
    try:
        success = args.func(args)
        return 0 if success else 1
    except KeyboardInterrupt:
        print_info("\nOperation cancelled by user")
        return 130
    except TaxEngineError as e:
        print_error(str(e))
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        return 1

if __name__ == '__main__':
    sys.exit(main())
