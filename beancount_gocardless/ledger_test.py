"""Tests for reading and appending to ledger files."""

import datetime
import os
import tempfile
import textwrap
from decimal import Decimal

import pytest

from beancount.core.amount import Amount
from beancount.core.data import Balance, Open, new_metadata

from .errors import ParseError
from .ledger import read_ledger, write_ledger


MAIN = """
    include "accounts/*.beancount"

    2024-01-01 open Expenses:Food
"""

BANK = """
    2024-01-01 open Assets:Bank:Checking USD
      importer: "gocardless"
      account_id: "acc-1"
"""


@pytest.fixture
def ledger_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        os.makedirs(os.path.join(tmpdir, "accounts"))
        with open(os.path.join(tmpdir, "main.beancount"), "w") as f:
            f.write(textwrap.dedent(MAIN))
        with open(os.path.join(tmpdir, "accounts", "bank.beancount"), "w") as f:
            f.write(textwrap.dedent(BANK).lstrip())
        yield tmpdir


class TestReadLedger:
    """Test parsing a ledger and its includes."""

    def test_follows_includes(self, ledger_dir):
        ledger = read_ledger(os.path.join(ledger_dir, "main.beancount"))

        filenames = list(ledger.files)
        assert filenames == [
            os.path.join(ledger_dir, "main.beancount"),
            os.path.join(ledger_dir, "accounts", "bank.beancount"),
        ]
        bank = ledger.files[filenames[1]]
        assert len(bank.directives) == 1
        assert isinstance(bank.directives[0], Open)
        assert bank.directives[0].meta["account_id"] == "acc-1"
        assert bank.new_directives == []

    def test_all_entries(self, ledger_dir):
        ledger = read_ledger(os.path.join(ledger_dir, "main.beancount"))
        accounts = sorted(entry.account for entry in ledger.all_entries)
        assert accounts == ["Assets:Bank:Checking", "Expenses:Food"]

    def test_missing_file(self, ledger_dir):
        with pytest.raises(ParseError, match="File not found"):
            read_ledger(os.path.join(ledger_dir, "missing.beancount"))

    def test_unmatched_include(self, ledger_dir):
        path = os.path.join(ledger_dir, "broken.beancount")
        with open(path, "w") as f:
            f.write('include "nothing/*.beancount"\n')
        with pytest.raises(ParseError, match="does not match"):
            read_ledger(path)

    def test_syntax_error(self, ledger_dir):
        path = os.path.join(ledger_dir, "broken.beancount")
        with open(path, "w") as f:
            f.write("2024-01-01 open\n")
        with pytest.raises(ParseError):
            read_ledger(path)


class TestWriteLedger:
    """Test appending new directives to ledger files."""

    def test_appends_only_new_directives(self, ledger_dir):
        main_path = os.path.join(ledger_dir, "main.beancount")
        bank_path = os.path.join(ledger_dir, "accounts", "bank.beancount")
        with open(main_path) as f:
            main_before = f.read()
        with open(bank_path) as f:
            bank_before = f.read()

        ledger = read_ledger(main_path)
        ledger.files[bank_path].directives.append(Balance(
            meta=new_metadata("<test>", 0),
            date=datetime.date(2024, 3, 6),
            account="Assets:Bank:Checking",
            amount=Amount(Decimal("85.00"), "USD"),
            tolerance=None,
            diff_amount=None,
        ))
        write_ledger(ledger)

        with open(main_path) as f:
            assert f.read() == main_before
        with open(bank_path) as f:
            bank_after = f.read()
        assert bank_after.startswith(bank_before)
        assert "2024-03-06 balance Assets:Bank:Checking" in bank_after
        assert ledger.files[bank_path].new_directives == []

        reread = read_ledger(main_path)
        balance = reread.files[bank_path].directives[-1]
        assert isinstance(balance, Balance)
        assert balance.amount == Amount(Decimal("85.00"), "USD")
