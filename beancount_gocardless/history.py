"""Index of what a ledger already contains.

The index is built once per import, before any account is processed, and is
not updated while new directives are added.
"""

import datetime
import types
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping

from beancount.core.data import Balance, Transaction

from .normalize import LINK_PREFIX


@dataclass(frozen=True)
class History:
    """Read-only snapshot of previously imported data.

    Attributes:
        imported_ids: Every `id-` link found on a transaction.
        last_balance: Latest balance assertion per account.
        last_transaction_date: Latest date an account was posted to.
    """
    imported_ids: FrozenSet[str]
    last_balance: Mapping[str, Balance]
    last_transaction_date: Mapping[str, datetime.date]


def build_history(entries: Iterable) -> History:
    """Scan `entries` once and build a History.

    Balance assertions dated on the same day as the current latest one replace
    it, so the last one in scan order wins.
    """
    imported_ids = set()
    last_balance = {}
    last_transaction_date = {}

    for entry in entries:
        if isinstance(entry, Transaction):
            for link in entry.links or ():
                if link.startswith(LINK_PREFIX):
                    imported_ids.add(link)
            for posting in entry.postings:
                latest = last_transaction_date.get(posting.account)
                if latest is None or entry.date > latest:
                    last_transaction_date[posting.account] = entry.date
        elif isinstance(entry, Balance):
            previous = last_balance.get(entry.account)
            if previous is None or entry.date >= previous.date:
                last_balance[entry.account] = entry

    return History(
        imported_ids=frozenset(imported_ids),
        last_balance=types.MappingProxyType(last_balance),
        last_transaction_date=types.MappingProxyType(last_transaction_date),
    )
