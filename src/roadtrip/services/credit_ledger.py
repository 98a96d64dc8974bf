"""Credit ledger for game master calls.

Every call to Professor Jones costs credits: a round-starting call costs
more than a follow-up. Subscribers play for free. The ledger only reads and
decrements balances; buying credits happens elsewhere.

Usage:
    ledger = SupabaseCreditLedger(url, service_key)
    remaining = await ledger.charge(user_id, 3)   # int or "unlimited"
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Union, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"

Balance = Union[int, str]


class CreditError(Exception):
    """Base class for ledger failures."""


class UserNotFoundError(CreditError):
    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class InsufficientCreditsError(CreditError):
    def __init__(self, credits: Optional[int], required: Optional[int]):
        self.credits = credits
        self.required = required
        super().__init__(f"Insufficient credits: have {credits}, need {required}")


class LedgerUnavailableError(CreditError):
    """The backing store could not be reached or answered with an error."""


@dataclass
class Account:
    credits: int = 0
    is_subscriber: bool = False


@runtime_checkable
class CreditLedger(Protocol):
    async def get_account(self, user_id: str) -> Account:
        ...

    async def charge(self, user_id: str, cost: int) -> Balance:
        ...


def _remaining_after(account: Account, cost: int) -> Balance:
    if account.is_subscriber:
        return UNLIMITED
    if account.credits < cost:
        raise InsufficientCreditsError(account.credits, cost)
    return account.credits - cost


class InMemoryCreditLedger:
    """Ledger kept in a dict; used for local play and tests."""

    def __init__(self, accounts: Optional[Dict[str, Account]] = None):
        self.accounts: Dict[str, Account] = dict(accounts or {})

    def add_account(self, user_id: str, credits: int = 0, is_subscriber: bool = False) -> Account:
        account = Account(credits=credits, is_subscriber=is_subscriber)
        self.accounts[user_id] = account
        return account

    async def get_account(self, user_id: str) -> Account:
        account = self.accounts.get(user_id)
        if account is None:
            raise UserNotFoundError(user_id)
        return account

    async def charge(self, user_id: str, cost: int) -> Balance:
        account = await self.get_account(user_id)
        remaining = _remaining_after(account, cost)
        if remaining != UNLIMITED:
            account.credits = remaining
        return remaining


class SupabaseCreditLedger:
    """
    Ledger backed by the ``users`` table through Supabase's REST API.

    The decrement is conditional on the balance that was read, so two
    concurrent charges cannot both spend the same credits; a lost race is
    retried with the fresh balance.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        url: str,
        service_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
        }

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self, method: str, path: str, prefer: Optional[str] = None, **kwargs
    ) -> httpx.Response:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = await self.client.request(
                method, f"{self.base_url}/{path}", headers=headers, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Supabase {method} {path} failed: {e}")
            raise LedgerUnavailableError(str(e)) from e
        return response

    async def get_account(self, user_id: str) -> Account:
        response = await self._request(
            "GET",
            "users",
            params={"id": f"eq.{user_id}", "select": "credits,is_subscriber"},
        )
        rows = response.json()
        if not rows:
            raise UserNotFoundError(user_id)
        row = rows[0]
        return Account(
            credits=int(row.get("credits") or 0),
            is_subscriber=bool(row.get("is_subscriber")),
        )

    async def charge(self, user_id: str, cost: int) -> Balance:
        for attempt in range(self.MAX_ATTEMPTS):
            account = await self.get_account(user_id)
            remaining = _remaining_after(account, cost)
            if remaining == UNLIMITED:
                return remaining

            response = await self._request(
                "PATCH",
                "users",
                params={"id": f"eq.{user_id}", "credits": f"eq.{account.credits}"},
                json={"credits": remaining},
                prefer="return=representation",
            )
            if response.json():
                return remaining
            logger.info(f"Balance for {user_id} changed during charge, retrying ({attempt + 1})")

        raise LedgerUnavailableError(f"Could not charge {user_id} after {self.MAX_ATTEMPTS} attempts")

