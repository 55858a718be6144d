"""Test doubles for the provider API and the monotonic clock."""

import json
from datetime import datetime
from urllib.parse import parse_qs

import httpx


def monzo_transaction(
    external_id: str,
    amount: int,
    created: datetime,
    description: str = "CARD PAYMENT",
    account_id: str = "acc_00009",
    **extra,
) -> dict:
    """Build a transaction dict shaped like the provider's JSON."""
    return {
        "id": external_id,
        "account_id": account_id,
        "amount": amount,
        "currency": "GBP",
        "created": created.isoformat().replace("+00:00", "Z"),
        "description": description,
        "settled": "",
        "notes": "",
        **extra,
    }


def condition(field: str, match_type: str, value, case_sensitive: bool = False) -> dict:
    return {"field": field, "matchType": match_type, "value": value, "caseSensitive": case_sensitive}


def conditions(*items: dict, operator: str = "AND") -> dict:
    return {"operator": operator, "rules": list(items)}


class FakeClock:
    """Monotonic clock the tests move forward by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMonzo:
    """In-memory stand-in for the Monzo HTTP API, served through httpx.MockTransport."""

    def __init__(self):
        self.accounts = [
            {"id": "acc_00009", "description": "Joint account", "type": "uk_retail_joint", "closed": False}
        ]
        self.transactions: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.valid_access_tokens = {"access-1"}
        self.accounts_status = 200
        self.token_status = 200
        # Status codes returned (in order) by /transactions before it succeeds
        self.transaction_failures: list[int] = []
        self.webhooks: dict[str, dict] = {}
        self.registered_webhooks = 0
        self.issued_tokens = 0
        self.on_transactions_page = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def _authorized(self, request: httpx.Request) -> bool:
        header = request.headers.get("Authorization", "")
        return header.removeprefix("Bearer ") in self.valid_access_tokens

    def _issue_tokens(self) -> httpx.Response:
        self.issued_tokens += 1
        access_token = f"access-{self.issued_tokens + 1}"
        self.valid_access_tokens.add(access_token)
        return httpx.Response(
            200,
            json={
                "access_token": access_token,
                "refresh_token": f"refresh-{self.issued_tokens + 1}",
                "expires_in": 21600,
                "token_type": "Bearer",
                "user_id": "user_00001",
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/oauth2/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return self._issue_tokens()
        if path == "/oauth2/logout":
            return httpx.Response(200, json={})

        if not self._authorized(request):
            return httpx.Response(401, json={"code": "unauthorized.bad_access_token"})

        if path == "/accounts":
            if self.accounts_status != 200:
                return httpx.Response(self.accounts_status, json={"code": "forbidden.insufficient_permissions"})
            return httpx.Response(200, json={"accounts": self.accounts})
        if path == "/transactions":
            return self._transactions(request)
        if path == "/webhooks" and request.method == "POST":
            form = parse_qs(request.content.decode())
            self.registered_webhooks += 1
            webhook_id = f"webhook_{self.registered_webhooks:05d}"
            webhook = {"id": webhook_id, "account_id": form["account_id"][0], "url": form["url"][0]}
            self.webhooks[webhook_id] = webhook
            return httpx.Response(200, json={"webhook": webhook})
        if path.startswith("/webhooks/") and request.method == "DELETE":
            self.webhooks.pop(path.rsplit("/", 1)[-1], None)
            return httpx.Response(200, json={})
        return httpx.Response(404, json={"code": "not_found"})

    def _transactions(self, request: httpx.Request) -> httpx.Response:
        if self.transaction_failures:
            status = self.transaction_failures.pop(0)
            return httpx.Response(status, json={"code": "error"})

        params = request.url.params
        since = datetime.fromisoformat(params["since"].replace("Z", "+00:00"))
        before = params.get("before")
        before_dt = datetime.fromisoformat(before.replace("Z", "+00:00")) if before else None
        limit = int(params.get("limit", 100))

        def created(item: dict) -> datetime:
            return datetime.fromisoformat(item["created"].replace("Z", "+00:00"))

        matching = [
            item
            for item in self.transactions
            if item["account_id"] == params["account_id"]
            and created(item) >= since
            and (before_dt is None or created(item) < before_dt)
        ]
        matching.sort(key=created, reverse=True)
        page = matching[:limit]
        if self.on_transactions_page is not None:
            self.on_transactions_page()
        return httpx.Response(200, content=json.dumps({"transactions": page}))


