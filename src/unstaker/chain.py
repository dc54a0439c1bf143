"""Chain API client.

Thin async wrapper around the chain's HTTP RPC (`/v1/chain/*`). Each method does
exactly one request; retry decisions belong to the callers.
"""
import json
import logging
from typing import Protocol, Any

import httpx

import unstaker.constants as C

log = logging.getLogger("unstaker.chain")


class ChainError(Exception):
    """Base class for chain API failures."""


class ChainResponseError(ChainError):
    """The node answered, but not with something we can use (bad status, bad JSON, missing fields)."""

    def __init__(self, path: str, message: str, status_code: int | None = None):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.status_code = status_code


class AccountLookupError(ChainError):
    pass


class PushError(ChainError):
    pass


# Everything a single scan/build/submit cycle can recover from by waiting
TRANSIENT_ERRORS = (httpx.HTTPError, ChainResponseError)


class Chain(Protocol):
    async def get_table_rows(self, body: dict) -> dict: ...
    async def get_info(self) -> dict: ...
    async def get_account(self, account: str) -> dict: ...
    async def push_transaction(self, payload: dict) -> dict: ...


def delband_query(scope: str, lower_bound: str = C.TABLE_FIRST_KEY, limit: int = C.TABLE_PAGE_LIMIT) -> dict:
    return {
        "json": True,
        "code": C.SYSTEM_ACCOUNT,
        "scope": scope,
        "table": C.DELBAND_TABLE,
        "lower_bound": lower_bound,
        "upper_bound": "",
        "index_position": 1,
        "key_type": "",
        "limit": str(limit),
        "reverse": False,
        "show_payer": False,
        "index": 1,
    }


class ChainClient:
    def __init__(self, base_url: str, *, timeout: float = C.RPC_TIMEOUT, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict:
        log.debug("POST %s %s", path, payload)
        resp = await self._http.post(path, json=payload)
        if resp.status_code != 200:
            raise ChainResponseError(path, f"HTTP {resp.status_code}: {resp.text[:200]}", resp.status_code)
        try:
            body = resp.json()
        except json.JSONDecodeError as e:
            raise ChainResponseError(path, f"undecodable response: {e}", resp.status_code) from e
        if not isinstance(body, dict):
            raise ChainResponseError(path, f"expected a JSON object, got {type(body).__name__}", resp.status_code)
        return body

    async def get_table_rows(self, body: dict) -> dict:
        path = "/v1/chain/get_table_rows"
        result = await self._post(path, body)
        if not isinstance(result.get("rows"), list):
            raise ChainResponseError(path, "response has no 'rows' list")
        return result

    async def get_info(self) -> dict:
        path = "/v1/chain/get_info"
        result = await self._post(path, {})
        for key in ("chain_id", "head_block_id"):
            if not result.get(key):
                raise ChainResponseError(path, f"response has no {key!r}")
        return result

    async def get_account(self, account: str) -> dict:
        path = "/v1/chain/get_account"
        try:
            return await self._post(path, {"account_name": account})
        except (httpx.HTTPError, ChainResponseError) as e:
            raise AccountLookupError(f"getting account {account}: {e}") from e

    async def push_transaction(self, payload: dict) -> dict:
        path = "/v1/chain/push_transaction"
        try:
            result = await self._post(path, payload)
        except (httpx.HTTPError, ChainResponseError) as e:
            raise PushError(f"pushing transaction: {e}") from e
        if "transaction_id" not in result:
            raise PushError(f"pushing transaction: no transaction_id in response {result}")
        return result
