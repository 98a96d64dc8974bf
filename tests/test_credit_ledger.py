"""Tests for the credit ledgers."""

import asyncio
import json

import httpx
import pytest
from src.roadtrip.services.credit_ledger import (
    UNLIMITED,
    Account,
    InMemoryCreditLedger,
    InsufficientCreditsError,
    LedgerUnavailableError,
    SupabaseCreditLedger,
    UserNotFoundError,
)


class TestInMemoryCreditLedger:
    def test_charge_deducts(self):
        ledger = InMemoryCreditLedger()
        ledger.add_account("u1", credits=12)

        remaining = asyncio.run(ledger.charge("u1", 10))

        assert remaining == 2
        assert ledger.accounts["u1"].credits == 2

    def test_insufficient_credits_leave_balance(self):
        ledger = InMemoryCreditLedger({"u1": Account(credits=2)})

        with pytest.raises(InsufficientCreditsError) as excinfo:
            asyncio.run(ledger.charge("u1", 3))

        assert (excinfo.value.credits, excinfo.value.required) == (2, 3)
        assert ledger.accounts["u1"].credits == 2

    def test_subscriber_is_unlimited(self):
        ledger = InMemoryCreditLedger({"u1": Account(credits=0, is_subscriber=True)})

        assert asyncio.run(ledger.charge("u1", 10)) == UNLIMITED
        assert ledger.accounts["u1"].credits == 0

    def test_unknown_user(self):
        with pytest.raises(UserNotFoundError):
            asyncio.run(InMemoryCreditLedger().charge("ghost", 3))


class FakeSupabase:
    """Just enough of PostgREST for the users table."""

    def __init__(self, users, steal_on_first_patch=0):
        self.users = users
        self.steal_on_first_patch = steal_on_first_patch
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.url.path == "/rest/v1/users"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"

        user_id = request.url.params["id"].removeprefix("eq.")
        row = self.users.get(user_id)
        if request.method == "GET":
            return httpx.Response(200, json=[dict(row)] if row else [])

        assert request.headers["Prefer"] == "return=representation"
        if self.steal_on_first_patch and row:
            # Another device spends credits between our read and write.
            row["credits"] -= self.steal_on_first_patch
            self.steal_on_first_patch = 0
        expected = int(request.url.params["credits"].removeprefix("eq."))
        if not row or row["credits"] != expected:
            return httpx.Response(200, json=[])
        row.update(json.loads(request.content))
        return httpx.Response(200, json=[dict(row)])


def _ledger(fake):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    return SupabaseCreditLedger("https://db.example.supabase.co/", "service-key", client=client)


class TestSupabaseCreditLedger:
    def test_get_account(self):
        fake = FakeSupabase({"u1": {"credits": 40, "is_subscriber": False}})

        account = asyncio.run(_ledger(fake).get_account("u1"))

        assert account == Account(credits=40, is_subscriber=False)
        assert fake.requests[0].url.params["select"] == "credits,is_subscriber"

    def test_charge_is_conditional_on_read_balance(self):
        fake = FakeSupabase({"u1": {"credits": 40, "is_subscriber": False}})

        remaining = asyncio.run(_ledger(fake).charge("u1", 10))

        assert remaining == 30
        assert fake.users["u1"]["credits"] == 30
        patch = fake.requests[-1]
        assert patch.method == "PATCH"
        assert patch.url.params["credits"] == "eq.40"

    def test_lost_race_is_retried(self):
        fake = FakeSupabase({"u1": {"credits": 40, "is_subscriber": False}}, steal_on_first_patch=3)

        remaining = asyncio.run(_ledger(fake).charge("u1", 10))

        assert remaining == 27
        assert fake.users["u1"]["credits"] == 27
        assert [r.method for r in fake.requests] == ["GET", "PATCH", "GET", "PATCH"]

    def test_subscriber_skips_write(self):
        fake = FakeSupabase({"u1": {"credits": 0, "is_subscriber": True}})

        assert asyncio.run(_ledger(fake).charge("u1", 10)) == UNLIMITED
        assert [r.method for r in fake.requests] == ["GET"]

    def test_insufficient_credits(self):
        fake = FakeSupabase({"u1": {"credits": 5, "is_subscriber": False}})

        with pytest.raises(InsufficientCreditsError):
            asyncio.run(_ledger(fake).charge("u1", 10))
        assert fake.users["u1"]["credits"] == 5

    def test_unknown_user(self):
        with pytest.raises(UserNotFoundError):
            asyncio.run(_ledger(FakeSupabase({})).charge("ghost", 3))

    def test_http_error_is_unavailable(self):
        def handler(request):
            return httpx.Response(503, json={"message": "down"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ledger = SupabaseCreditLedger("https://db.example.supabase.co", "service-key", client=client)

        with pytest.raises(LedgerUnavailableError):
            asyncio.run(ledger.get_account("u1"))
