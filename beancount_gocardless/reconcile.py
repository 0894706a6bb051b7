"""Merging a GoCardless feed into a beancount ledger.

Specifying the accounts to import
=================================

An account is imported when its `open` directive carries the importer
metadata:

    2024-01-01 open Assets:Bank:Checking EUR
      importer: "gocardless"
      account_id: "7e944232-bda9-40bc-b784-660c7ab5fe78"

`account_id` is the GoCardless account identifier, as shown by the
`list-requisitions` command.

What gets imported
==================

For every configured account, booked transactions whose `id-` link is not yet
in the ledger are appended to the file that opens the account, oldest first.
They are followed by a balance assertion when the bank's current balance,
minus the pending transactions, differs from the latest assertion in the
ledger:

    2024-03-06 balance Assets:Bank:Checking    85.00 EUR

Running the import twice against the same bank state adds nothing the second
time.
"""

import datetime
from typing import Callable, List, Optional, Tuple

from beancount.core.amount import Amount
from beancount.core.data import Balance, Open, Transaction, new_metadata

from .currency_bag import CurrencyBag
from .errors import MissingFieldError, NoReferenceDateError
from .history import History, build_history
from .ledger import Ledger, LedgerFile
from .normalize import (
    SOURCE_FILENAME,
    GoCardlessBalance,
    make_transaction,
    parse_balance,
    parse_transaction,
)


IMPORTER_KEY = 'importer'
IMPORTER_NAME = 'gocardless'
ACCOUNT_ID_KEY = 'account_id'


def find_import_accounts(ledger_file: LedgerFile) -> List[Tuple[str, str]]:
    """Return `(account_id, account)` pairs configured in `ledger_file`."""
    result = []
    for entry in ledger_file.directives:
        if not isinstance(entry, Open) or not entry.meta:
            continue
        importer = entry.meta.get(IMPORTER_KEY)
        if not isinstance(importer, str) or importer != IMPORTER_NAME:
            continue
        account_id = entry.meta.get(ACCOUNT_ID_KEY)
        if not isinstance(account_id, str):
            continue
        result.append((account_id, entry.account))
    return result


def is_duplicate(entry, imported_ids) -> bool:
    if not isinstance(entry, Transaction):
        return False
    return any(link in imported_ids for link in entry.links or ())


def pending_amounts(records: List[dict]) -> CurrencyBag:
    bag = CurrencyBag()
    for record in records:
        txn = parse_transaction(record)
        if txn.amount is None:
            raise MissingFieldError('pending transaction amount is missing')
        bag.add(txn.amount)
    return bag


def reconcile_balance(
    account: str,
    balance: GoCardlessBalance,
    pending: CurrencyBag,
    last_balance: Optional[Balance],
    last_transaction_date: Optional[datetime.date],
) -> Optional[Balance]:
    """Decide whether a new balance assertion is needed for `account`.

    Returns the new Balance directive, or None when the latest assertion
    already states the pending-adjusted bank balance.

    `last_transaction_date` is the latest date of the account across the
    ledger and the transactions imported for it in the same run; the
    assertion falls on the day after it when the bank gives no reference
    date.

    Raises:
        NoReferenceDateError: If the bank gave no reference date and the
            account has no transactions to date the assertion after.
    """
    reported = balance.amount
    adjusted = Amount(
        reported.number - pending.get(reported.currency), reported.currency)

    if last_balance is not None and last_balance.amount == adjusted:
        return None

    if balance.reference_date is not None:
        date = balance.reference_date
    elif last_transaction_date is not None:
        date = last_transaction_date + datetime.timedelta(days=1)
    else:
        raise NoReferenceDateError(
            f'no reference date for the balance of {account}')

    return Balance(
        meta=new_metadata(SOURCE_FILENAME, 0),
        date=date,
        account=account,
        amount=adjusted,
        tolerance=None,
        diff_amount=None,
    )


def sort_new_transactions(entries: List) -> List:
    """Order feed entries (newest first) chronologically.

    Entries booked on the same day end up in reverse feed order, which is
    chronological for a newest-first feed.
    """
    entries = list(reversed(entries))
    entries.sort(key=lambda entry: entry.date)
    return entries


def import_account(
    client,
    account_id: str,
    account: str,
    history: History,
) -> List:
    """Fetch one account and return the directives to add for it."""
    transactions = client.fetch_transactions(account_id)

    new_entries = []
    for record in transactions.get('booked') or []:
        entry = make_transaction(parse_transaction(record), account)
        if not is_duplicate(entry, history.imported_ids):
            new_entries.append(entry)
    new_entries = sort_new_transactions(new_entries)

    pending = pending_amounts(transactions.get('pending') or [])

    balances = client.fetch_balances(account_id)
    if not balances:
        return new_entries

    last_transaction_date = history.last_transaction_date.get(account)
    if new_entries:
        newest = new_entries[-1].date
        if last_transaction_date is None or newest > last_transaction_date:
            last_transaction_date = newest

    balance_entry = reconcile_balance(
        account,
        parse_balance(balances[0]),
        pending,
        history.last_balance.get(account),
        last_transaction_date,
    )
    if balance_entry is not None:
        new_entries.append(balance_entry)
    return new_entries


def reconcile(
    ledger: Ledger,
    client,
    log_status: Callable[[str], None] = print,
) -> Ledger:
    """Add the new transactions and balances of all configured accounts.

    The ledger is only modified once every account has been fetched and
    converted; if any of them fails, the exception propagates and the ledger
    is left as it was.
    """
    history = build_history(ledger.all_entries)

    staged: List[Tuple[LedgerFile, List]] = []
    for ledger_file in ledger.files.values():
        for account_id, account in find_import_accounts(ledger_file):
            log_status(f'gocardless: retrieving transactions for {account} ...')
            new_entries = import_account(client, account_id, account, history)
            log_status(
                f'gocardless: {account}: {len(new_entries)} new directives')
            staged.append((ledger_file, new_entries))

    for ledger_file, new_entries in staged:
        ledger_file.directives.extend(new_entries)
    return ledger
