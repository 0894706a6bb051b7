"""Conversion of GoCardless transaction records into beancount directives.

Data format
===========

The GoCardless Bank Account Data API returns transactions as JSON objects in
Berlin Group (NextGenPSD2) shape, for example:

    {
        "internalTransactionId": "0a5b6f2c8e1d4b7a",
        "bookingDate": "2024-03-05",
        "bookingDateTime": "2024-03-05T10:21:00Z",
        "valueDate": "2024-03-05",
        "transactionAmount": {"amount": "-15.00", "currency": "EUR"},
        "creditorName": "STARBUCKS",
        "creditorAccount": {"iban": "DE89370400440532013000"},
        "remittanceInformationUnstructured": "Coffee",
        "proprietaryBankTransactionCode": "CARD_PAYMENT"
    }

Only `bookingDate` and `transactionAmount` are required, everything else is
optional.

Imported transaction format
===========================

Transactions are generated with a single posting and the `!` flag; the
balancing leg is left to the user:

    2024-03-05 ! "Coffee" ^id-0a5b6f2c8e1d4b7a
      booking_date_time: "2024-03-05T10:21:00Z"
      value_date: "2024-03-05"
      to_name: "STARBUCKS"
      to_iban: "DE89370400440532013000"
      transaction_code: "CARD_PAYMENT"
      Assets:Bank:Checking  -15.00 EUR

The `id-` link is what later imports use to recognize the transaction.
"""

import datetime
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from beancount.core.amount import Amount
from beancount.core.data import Posting, Transaction, EMPTY_SET, new_metadata
from beancount.core.flags import FLAG_WARNING

from .errors import MissingFieldError, ParseError


LINK_PREFIX = 'id-'
# Characters beancount accepts in a link.
LINK_RE = re.compile(r'[A-Za-z0-9\-_/.]+')

# Filename recorded in the metadata of generated directives.
SOURCE_FILENAME = '<gocardless>'

# Metadata keys
BOOKING_DATE_TIME_KEY = 'booking_date_time'
VALUE_DATE_KEY = 'value_date'
VALUE_DATE_TIME_KEY = 'value_date_time'
FROM_NAME_KEY = 'from_name'
FROM_IBAN_KEY = 'from_iban'
TO_NAME_KEY = 'to_name'
TO_IBAN_KEY = 'to_iban'
SOURCE_CURRENCY_KEY = 'source_currency'
EXCHANGE_RATE_KEY = 'exchange_rate'
TARGET_CURRENCY_KEY = 'target_currency'
TRANSACTION_CODE_KEY = 'transaction_code'


@dataclass
class GoCardlessTransaction:
    """A transaction record as returned by the GoCardless API."""
    booking_date: Optional[datetime.date]
    amount: Optional[Amount]
    internal_transaction_id: Optional[str] = None
    booking_date_time: Optional[str] = None
    value_date: Optional[str] = None
    value_date_time: Optional[str] = None
    debtor_name: Optional[str] = None
    debtor_iban: Optional[str] = None
    creditor_name: Optional[str] = None
    creditor_iban: Optional[str] = None
    remittance_information: Optional[str] = None
    remittance_information_array: Tuple[str, ...] = ()
    source_currency: Optional[str] = None
    target_currency: Optional[str] = None
    exchange_rate: Optional[str] = None
    bank_transaction_code: Optional[str] = None


@dataclass
class GoCardlessBalance:
    """One entry of an account's balance list."""
    amount: Amount
    balance_type: Optional[str] = None
    reference_date: Optional[datetime.date] = None


def parse_date(text: str) -> datetime.date:
    """Parse a `YYYY-MM-DD` date, ignoring any trailing time part.

    Raises:
        ParseError: If the text does not start with a valid date.
    """
    try:
        return datetime.datetime.strptime(text[:10], '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ParseError(f'Cannot parse date: {text!r}')


def parse_decimal(text: str) -> Decimal:
    try:
        return Decimal(text.strip())
    except (AttributeError, InvalidOperation):
        raise ParseError(f'Cannot parse amount: {text!r}')


def parse_amount(data: Optional[Dict[str, Any]]) -> Optional[Amount]:
    """Parse an `{"amount": ..., "currency": ...}` object.

    Returns None when the object or either of its fields is absent.
    """
    if not data:
        return None
    number = data.get('amount')
    currency = data.get('currency')
    if number is None or not currency:
        return None
    return Amount(parse_decimal(str(number)), currency)


def _nested(data: Dict[str, Any], key: str, field: str) -> Optional[str]:
    value = data.get(key)
    if not isinstance(value, dict):
        return None
    return value.get(field)


def parse_transaction(data: Dict[str, Any]) -> GoCardlessTransaction:
    """Parse one transaction object of the API response.

    Missing fields are kept as None so that the caller decides which of them
    are required; malformed dates and amounts raise ParseError.
    """
    booking_date = data.get('bookingDate')

    exchange = data.get('currencyExchange')
    # Some banks send the exchange block as a one-element list.
    if isinstance(exchange, list):
        exchange = exchange[0] if exchange else None
    if not isinstance(exchange, dict):
        exchange = {}

    exchange_rate = exchange.get('exchangeRate')
    return GoCardlessTransaction(
        booking_date=parse_date(booking_date) if booking_date else None,
        amount=parse_amount(data.get('transactionAmount')),
        internal_transaction_id=data.get('internalTransactionId'),
        booking_date_time=data.get('bookingDateTime'),
        value_date=data.get('valueDate'),
        value_date_time=data.get('valueDateTime'),
        debtor_name=data.get('debtorName'),
        debtor_iban=_nested(data, 'debtorAccount', 'iban'),
        creditor_name=data.get('creditorName'),
        creditor_iban=_nested(data, 'creditorAccount', 'iban'),
        remittance_information=data.get('remittanceInformationUnstructured'),
        remittance_information_array=tuple(
            data.get('remittanceInformationUnstructuredArray') or ()),
        source_currency=exchange.get('sourceCurrency'),
        target_currency=exchange.get('targetCurrency'),
        exchange_rate=str(exchange_rate) if exchange_rate is not None else None,
        bank_transaction_code=data.get('proprietaryBankTransactionCode'),
    )


def parse_balance(data: Dict[str, Any]) -> GoCardlessBalance:
    """Parse one entry of the `balances` list of the API response."""
    amount = parse_amount(data.get('balanceAmount'))
    if amount is None:
        raise MissingFieldError('balance amount is missing')
    reference_date = data.get('referenceDate')
    return GoCardlessBalance(
        amount=amount,
        balance_type=data.get('balanceType'),
        reference_date=parse_date(reference_date) if reference_date else None,
    )


# =============================================================================
# NARRATION RULES
# =============================================================================

@dataclass
class NarrationRule:
    """Picks the narration when `condition` holds.

    Attributes:
        name: Rule name, for debugging.
        condition: Returns True if the rule applies to the transaction.
        extract: Returns the narration.
    """
    name: str
    condition: Callable[[GoCardlessTransaction], bool]
    extract: Callable[[GoCardlessTransaction], str]


# Evaluated in order, first match wins.
NARRATION_RULES: List[NarrationRule] = [
    NarrationRule(
        name='remittance_array',
        condition=lambda txn: len(txn.remittance_information_array) > 0,
        extract=lambda txn: ', '.join(txn.remittance_information_array),
    ),
    NarrationRule(
        name='remittance',
        condition=lambda txn: txn.remittance_information is not None,
        extract=lambda txn: txn.remittance_information,
    ),
    NarrationRule(
        name='creditor_name',
        condition=lambda txn: txn.creditor_name is not None,
        extract=lambda txn: txn.creditor_name,
    ),
]


def get_narration(txn: GoCardlessTransaction) -> Optional[str]:
    for rule in NARRATION_RULES:
        if rule.condition(txn):
            return rule.extract(txn)
    return None


# Metadata key and the transaction field it is copied from, in output order.
METADATA_FIELDS: List[Tuple[str, Callable[[GoCardlessTransaction], Optional[str]]]] = [
    (BOOKING_DATE_TIME_KEY, lambda txn: txn.booking_date_time),
    (VALUE_DATE_KEY, lambda txn: txn.value_date),
    (VALUE_DATE_TIME_KEY, lambda txn: txn.value_date_time),
    (FROM_NAME_KEY, lambda txn: txn.debtor_name),
    (FROM_IBAN_KEY, lambda txn: txn.debtor_iban),
    (TO_NAME_KEY, lambda txn: txn.creditor_name),
    (TO_IBAN_KEY, lambda txn: txn.creditor_iban),
    (SOURCE_CURRENCY_KEY, lambda txn: txn.source_currency),
    (EXCHANGE_RATE_KEY, lambda txn: txn.exchange_rate),
    (TARGET_CURRENCY_KEY, lambda txn: txn.target_currency),
    (TRANSACTION_CODE_KEY, lambda txn: txn.bank_transaction_code),
]


def get_metadata(txn: GoCardlessTransaction) -> Dict[str, Any]:
    meta = new_metadata(SOURCE_FILENAME, 0)
    for key, extract in METADATA_FIELDS:
        value = extract(txn)
        if value is not None:
            meta[key] = value
    return meta


def make_link(transaction_id: str) -> str:
    """Return the `id-` link for a bank transaction identifier.

    Raises:
        ParseError: If the identifier cannot be written as a beancount link.
    """
    link = f'{LINK_PREFIX}{transaction_id}'
    if not LINK_RE.fullmatch(link):
        raise ParseError(f'Transaction identifier is not a valid link: {transaction_id!r}')
    return link


def make_transaction(txn: GoCardlessTransaction, account: str) -> Transaction:
    """Create a single-posting beancount Transaction for `account`.

    Raises:
        MissingFieldError: If the booking date or the amount is missing.
        ParseError: If the transaction identifier cannot be used as a link.
    """
    if txn.booking_date is None:
        raise MissingFieldError('booking date is missing')
    if txn.amount is None:
        raise MissingFieldError('transaction amount is missing')

    links = EMPTY_SET
    if txn.internal_transaction_id:
        links = frozenset([make_link(txn.internal_transaction_id)])

    return Transaction(
        meta=get_metadata(txn),
        date=txn.booking_date,
        flag=FLAG_WARNING,
        payee=None,
        narration=get_narration(txn),
        tags=EMPTY_SET,
        links=links,
        postings=[
            Posting(
                account=account,
                units=txn.amount,
                cost=None,
                price=None,
                flag=None,
                meta=None,
            ),
        ],
    )
