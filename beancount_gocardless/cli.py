"""Command line interface.

    beancount-gocardless sign-in SECRET_ID SECRET_KEY
    beancount-gocardless list-institutions --country PL
    beancount-gocardless create-requisition INSTITUTION_ID
    beancount-gocardless list-requisitions
    beancount-gocardless delete-requisition REQUISITION_ID
    beancount-gocardless list-transactions ACCOUNT_ID
    beancount-gocardless import ledger.beancount
"""

import argparse
import sys

import yaml

from .errors import GoCardlessError
from .gocardless import DEFAULT_REDIRECT, GoCardlessClient
from .ledger import read_ledger, write_ledger
from .reconcile import reconcile


REQUISITION_STATUSES = {
    'CR': 'Created (not set up yet)',
    'LN': 'Linked',
}


def parse_args(argv=None):
    ap = argparse.ArgumentParser(
        prog='beancount-gocardless',
        description='Import GoCardless bank transactions into a beancount ledger.')
    sub = ap.add_subparsers(dest='command', required=True)

    p = sub.add_parser('sign-in', help='obtain and store an access token')
    p.add_argument('secret_id')
    p.add_argument('secret_key')

    p = sub.add_parser('list-institutions', help='list supported banks')
    p.add_argument('--country', help='two-letter country code')

    p = sub.add_parser('create-requisition', help='start linking a bank')
    p.add_argument('institution_id')
    p.add_argument('--redirect', default=DEFAULT_REDIRECT,
                   help='URL the bank redirects to after the setup')

    sub.add_parser('list-requisitions', help='list linked banks and their accounts')

    p = sub.add_parser('delete-requisition', help='unlink a bank')
    p.add_argument('requisition_id')

    p = sub.add_parser('list-transactions', help='dump the raw transactions of an account')
    p.add_argument('account_id',
                   help='account ID, as shown by `list-requisitions`')

    p = sub.add_parser(
        'import',
        help='import transactions based on the configuration in a beancount ledger')
    p.add_argument('beancount_path',
                   help='ledger whose open directives carry importer metadata')

    return ap.parse_args(argv)


def print_requisitions(requisitions) -> None:
    for r in requisitions:
        print(f"ID: {r.get('id')}")
        print(f"Institution ID: {r.get('institution_id')}")
        print(f"Agreement: {r.get('agreement')}")
        status = r.get('status')
        print(f"Status: {REQUISITION_STATUSES.get(status, status)}")
        print(f"Link: {r.get('link')}")
        accounts = r.get('accounts')
        if accounts:
            print('Accounts:')
            for account in accounts:
                print(f'- {account}')
        print()


def run(args, client: GoCardlessClient) -> None:
    if args.command == 'sign-in':
        client.sign_in(args.secret_id, args.secret_key)
        print('Signed in')
    elif args.command == 'list-institutions':
        print('ID: NAME')
        for bank in client.list_institutions(args.country):
            print(f"{bank['id']}: {bank['name']}")
    elif args.command == 'create-requisition':
        res = client.create_requisition(args.institution_id, args.redirect)
        link = res.get('link')
        if not link:
            raise GoCardlessError('setup link is missing from the GoCardless response')
        print(f'Follow the link to finish the institution setup:\n{link}')
    elif args.command == 'list-requisitions':
        print_requisitions(client.list_requisitions())
    elif args.command == 'delete-requisition':
        client.delete_requisition(args.requisition_id)
    elif args.command == 'list-transactions':
        print(yaml.safe_dump(client.retrieve_transactions(args.account_id),
                             sort_keys=False, allow_unicode=True))
    elif args.command == 'import':
        ledger = read_ledger(args.beancount_path)
        reconcile(ledger, client, log_status=print)
        write_ledger(ledger)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        client = GoCardlessClient()
        run(args, client)
    except (GoCardlessError, ValueError) as e:
        print(f'Error: {e}', file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
