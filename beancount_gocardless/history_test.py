"""Tests for the ledger history index."""

import datetime
import textwrap
from decimal import Decimal

import pytest

from beancount.core.amount import Amount
from beancount.parser import parser

from . import history


def _parse(text):
    entries, errors, _ = parser.parse_string(textwrap.dedent(text))
    assert not errors
    return entries


LEDGER = """
    2024-01-01 open Assets:Bank:Checking USD
    2024-01-01 open Expenses:Food

    2024-03-01 * "Lunch" ^id-t1 ^invoice-7
      Assets:Bank:Checking  -10.00 USD
      Expenses:Food          10.00 USD

    2024-03-04 ! "Coffee" ^id-t2
      Assets:Bank:Checking  -5.00 USD

    2024-03-02 * "Dinner"
      Assets:Bank:Checking  -20.00 USD
      Expenses:Food          20.00 USD

    2024-03-05 balance Assets:Bank:Checking  100.00 USD
    2024-03-05 balance Assets:Bank:Checking  90.00 USD
    2024-02-01 balance Assets:Bank:Checking  50.00 USD
"""


class TestBuildHistory:
    """Test indexing of links, balances and transaction dates."""

    def test_imported_ids_only_id_links(self):
        result = history.build_history(_parse(LEDGER))
        assert result.imported_ids == frozenset({"id-t1", "id-t2"})

    def test_last_transaction_date_per_account(self):
        result = history.build_history(_parse(LEDGER))
        assert result.last_transaction_date["Assets:Bank:Checking"] == datetime.date(2024, 3, 4)
        assert result.last_transaction_date["Expenses:Food"] == datetime.date(2024, 3, 2)

    def test_last_balance_latest_date_last_seen_wins(self):
        result = history.build_history(_parse(LEDGER))
        balance = result.last_balance["Assets:Bank:Checking"]
        assert balance.date == datetime.date(2024, 3, 5)
        assert balance.amount == Amount(Decimal("90.00"), "USD")

    def test_empty_ledger(self):
        result = history.build_history([])
        assert result.imported_ids == frozenset()
        assert "Assets:Bank:Checking" not in result.last_balance
        assert "Assets:Bank:Checking" not in result.last_transaction_date

    def test_snapshot_is_read_only(self):
        result = history.build_history(_parse(LEDGER))
        with pytest.raises(TypeError):
            result.last_transaction_date["Assets:Other"] = datetime.date(2024, 1, 1)
