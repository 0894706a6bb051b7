"""Thin client for the GoCardless Bank Account Data API.

Authentication
==============

`sign-in` exchanges the user secrets for an access/refresh token pair which is
stored in `~/.gocardless/token.yml`:

    access_token: eyJhbGciOi...
    access_expires: 1710000000.0
    refresh_token: eyJhbGciOi...
    refresh_expires: 1712592000.0

Expiry times are UNIX timestamps. An expired access token is refreshed with
the refresh token and the file is updated.

Retries, rate limiting and pagination of the institution list are not
handled.
"""

import json
import os
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

import yaml

from .errors import AuthenticationError, NetworkError


DEFAULT_API_URL = 'https://bankaccountdata.gocardless.com/api/v2/'
API_URL_ENV = 'GOCARDLESS_API_URL'
DEFAULT_REDIRECT = 'https://example.com/'


def default_token_path() -> str:
    return os.path.join(os.path.expanduser('~'), '.gocardless', 'token.yml')


@dataclass
class Tokens:
    access_token: str
    access_expires: float
    refresh_token: str
    refresh_expires: float

    @classmethod
    def from_jwt(cls, now: float, jwt: Dict[str, Any]) -> 'Tokens':
        """Build Tokens from a `/token/new/` response received at `now`."""
        def required(key):
            value = jwt.get(key)
            if value is None:
                raise AuthenticationError(f'{key} is missing from the token response')
            return value

        return cls(
            access_token=required('access'),
            access_expires=now + int(required('access_expires')),
            refresh_token=required('refresh'),
            refresh_expires=now + int(required('refresh_expires')),
        )


class TokenStore:
    """Reads and writes the token file."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or default_token_path()

    def load(self) -> Tokens:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise AuthenticationError(
                'No access token found, please first run the `sign-in` command')
        except yaml.YAMLError as e:
            raise AuthenticationError(f'Malformed token file {self.path}: {e}')
        try:
            return Tokens(**data)
        except TypeError:
            raise AuthenticationError(f'Malformed token file {self.path}')

    def save(self, tokens: Tokens) -> None:
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        os.chmod(directory, 0o700)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(asdict(tokens), f)


class GoCardlessClient:
    """Blocking client for the endpoints used by the importer."""

    def __init__(
        self,
        token_store: Optional[TokenStore] = None,
        base_url: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_store = token_store or TokenStore()
        self.base_url = base_url or os.environ.get(API_URL_ENV) or DEFAULT_API_URL
        if not self.base_url.startswith(('https://', 'http://')):
            raise ValueError(f'Invalid GoCardless API URL: {self.base_url}')
        if not self.base_url.endswith('/'):
            self.base_url += '/'
        self.clock = clock
        self._access_token: Optional[str] = None

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        authenticated: bool = True,
    ) -> Any:
        url = urllib.parse.urljoin(self.base_url, path)
        if params:
            url += '?' + urllib.parse.urlencode(params)
        data = json.dumps(payload).encode('utf-8') if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header('Accept', 'application/json')
        if data is not None:
            req.add_header('Content-Type', 'application/json')
        if authenticated:
            req.add_header('Authorization', f'Bearer {self.access_token()}')

        try:
            with urllib.request.urlopen(req) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            err_body = e.read().decode('utf-8', errors='replace')
            raise NetworkError(
                f'GoCardless API error: {method} {path}: {e.code} {e.reason}: {err_body}'
            ) from e
        except urllib.error.URLError as e:
            raise NetworkError(f'GoCardless API unreachable: {e.reason}') from e

        if not body:
            return None
        try:
            return json.loads(body.decode('utf-8'))
        except json.JSONDecodeError as e:
            raise NetworkError(f'Invalid JSON from GoCardless API: {method} {path}') from e

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    def sign_in(self, secret_id: str, secret_key: str) -> Tokens:
        """Obtain a new token pair and store it."""
        now = self.clock()
        jwt = self._request(
            'POST', 'token/new/',
            payload={'secret_id': secret_id, 'secret_key': secret_key},
            authenticated=False)
        tokens = Tokens.from_jwt(now, jwt)
        self.token_store.save(tokens)
        self._access_token = tokens.access_token
        return tokens

    def access_token(self) -> str:
        """Return a valid access token, refreshing it when expired."""
        if self._access_token is not None:
            return self._access_token
        tokens = self.token_store.load()
        now = self.clock()
        if now < tokens.access_expires:
            self._access_token = tokens.access_token
            return self._access_token
        if now > tokens.refresh_expires:
            raise AuthenticationError(
                'Refresh token expired, please run the `sign-in` command again')
        jwt = self._request(
            'POST', 'token/refresh/',
            payload={'refresh': tokens.refresh_token},
            authenticated=False)
        if not jwt or not jwt.get('access'):
            raise AuthenticationError('access token is missing from the refresh response')
        tokens.access_token = jwt['access']
        if jwt.get('access_expires') is not None:
            tokens.access_expires = now + int(jwt['access_expires'])
        self.token_store.save(tokens)
        self._access_token = tokens.access_token
        return self._access_token

    # -------------------------------------------------------------------------
    # Institutions and requisitions
    # -------------------------------------------------------------------------

    def list_institutions(self, country: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'country': country} if country else None
        return self._request('GET', 'institutions/', params=params)

    def create_requisition(
        self, institution_id: str, redirect: str = DEFAULT_REDIRECT
    ) -> Dict[str, Any]:
        return self._request(
            'POST', 'requisitions/',
            payload={'redirect': redirect, 'institution_id': institution_id})

    def list_requisitions(self) -> List[Dict[str, Any]]:
        res = self._request('GET', 'requisitions/')
        return (res or {}).get('results') or []

    def delete_requisition(self, requisition_id: str) -> None:
        self._request(
            'DELETE', f'requisitions/{urllib.parse.quote(requisition_id)}/')

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def retrieve_transactions(self, account_id: str) -> Dict[str, Any]:
        """Return the raw `/accounts/{id}/transactions/` response."""
        return self._request(
            'GET', f'accounts/{urllib.parse.quote(account_id)}/transactions/')

    def fetch_transactions(self, account_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Return `{'booked': [...], 'pending': [...]}` for the account."""
        res = self.retrieve_transactions(account_id) or {}
        transactions = res.get('transactions') or {}
        return {
            'booked': transactions.get('booked') or [],
            'pending': transactions.get('pending') or [],
        }

    def fetch_balances(self, account_id: str) -> List[Dict[str, Any]]:
        res = self._request(
            'GET', f'accounts/{urllib.parse.quote(account_id)}/balances/')
        return (res or {}).get('balances') or []
