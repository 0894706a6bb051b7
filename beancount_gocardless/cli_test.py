"""Tests for the command line interface."""

import os
import tempfile
import textwrap
from unittest import mock

import pytest

from . import cli
from .errors import NetworkError


class FakeClient:
    def __init__(self):
        self.deleted = []

    def list_institutions(self, country=None):
        return [{"id": "MBANK_RETAIL_BREXPLPW", "name": "mBank"}]

    def list_requisitions(self):
        return [{
            "id": "req-1",
            "institution_id": "MBANK_RETAIL_BREXPLPW",
            "agreement": "agr-1",
            "status": "LN",
            "link": "https://ob.gocardless.com/psd2/start/req-1",
            "accounts": ["acc-1"],
        }]

    def create_requisition(self, institution_id, redirect):
        return {"id": "req-2", "link": f"https://ob.gocardless.com/{institution_id}"}

    def delete_requisition(self, requisition_id):
        self.deleted.append(requisition_id)

    def retrieve_transactions(self, account_id):
        return {"transactions": {"booked": [{"internalTransactionId": "t1"}], "pending": []}}

    def fetch_transactions(self, account_id):
        return {"booked": [{
            "internalTransactionId": "t1",
            "bookingDate": "2024-03-01",
            "transactionAmount": {"amount": "-1.00", "currency": "USD"},
            "remittanceInformationUnstructured": "Coffee",
        }], "pending": []}

    def fetch_balances(self, account_id):
        return []


class TestParseArgs:
    """Test command line parsing."""

    def test_import(self):
        args = cli.parse_args(["import", "main.beancount"])
        assert args.command == "import"
        assert args.beancount_path == "main.beancount"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.parse_args([])


class TestRun:
    """Test the sub-commands against a fake client."""

    def test_list_institutions(self, capsys):
        cli.run(cli.parse_args(["list-institutions", "--country", "PL"]), FakeClient())
        out = capsys.readouterr().out
        assert out.splitlines() == ["ID: NAME", "MBANK_RETAIL_BREXPLPW: mBank"]

    def test_list_requisitions(self, capsys):
        cli.run(cli.parse_args(["list-requisitions"]), FakeClient())
        out = capsys.readouterr().out
        assert "Status: Linked" in out
        assert "- acc-1" in out

    def test_create_requisition(self, capsys):
        cli.run(cli.parse_args(["create-requisition", "MBANK"]), FakeClient())
        assert "https://ob.gocardless.com/MBANK" in capsys.readouterr().out

    def test_delete_requisition(self):
        client = FakeClient()
        cli.run(cli.parse_args(["delete-requisition", "req-1"]), client)
        assert client.deleted == ["req-1"]

    def test_list_transactions_yaml(self, capsys):
        cli.run(cli.parse_args(["list-transactions", "acc-1"]), FakeClient())
        out = capsys.readouterr().out
        assert "internalTransactionId: t1" in out

    def test_import_writes_ledger(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "main.beancount")
            with open(path, "w") as f:
                f.write(textwrap.dedent("""
                    2024-01-01 open Assets:Bank:Checking USD
                      importer: "gocardless"
                      account_id: "acc-1"
                """))
            cli.run(cli.parse_args(["import", path]), FakeClient())
            with open(path) as f:
                content = f.read()

        assert "^id-t1" in content
        assert "Coffee" in content
        assert "Assets:Bank:Checking" in capsys.readouterr().out


class TestMain:
    """Test the exit status of the entry point."""

    def test_error_exit_status(self, capsys):
        with mock.patch.object(cli, "GoCardlessClient") as client_cls:
            client_cls.return_value.list_requisitions.side_effect = NetworkError("boom")
            assert cli.main(["list-requisitions"]) == 1
        assert "Error: boom" in capsys.readouterr().err

    def test_invalid_api_url_exit_status(self, capsys, monkeypatch):
        monkeypatch.setenv("GOCARDLESS_API_URL", "ftp://example.com/")
        assert cli.main(["list-requisitions"]) == 1
        assert "Error: Invalid GoCardless API URL" in capsys.readouterr().err
