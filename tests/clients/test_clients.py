"""HTTP clients against a local aiohttp stand-in for the upstream services."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest
from aiohttp import test_utils, web

from fakes import BRIDGE_ROUTER, WALLET
import yield_router.clients.http as http_module
from yield_router.calldata import ERC20_SELECTORS, decode_revert_reason
from yield_router.clients import (
    CoinGeckoPriceFeed,
    CustodyClient,
    HttpClient,
    JsonRpcClient,
    LiFiClient,
    TransactionSender,
)
from yield_router.clients.aggregator import parse_status
from yield_router.clients.custody import transaction_hash
from yield_router.core.models import BridgeStatusState, TransactionRequest
from yield_router.errors import HttpStatusError, RpcError, UpstreamError

REVERTER = "0x000000000000000000000000000000000000dead"
SIGNED = "0xf86b078504a817c80082520894" + "ab" * 20
PAUSED = (
    "0x08c379a0"
    + format(32, "064x")
    + format(12, "064x")
    + b"Pool: paused".hex().ljust(64, "0")
)

QUOTE = {
    "id": "q-1",
    "tool": "across",
    "action": {
        "fromToken": {"address": "0xaf88", "symbol": "USDC", "decimals": 6, "priceUSD": "1.0"},
        "toToken": {"address": "0x8335", "symbol": "USDC", "decimals": 6, "priceUSD": "0.9998"},
        "fromAmount": "100000000",
    },
    "estimate": {
        "toAmount": "99950000",
        "toAmountMin": "99450250",
        "approvalAddress": BRIDGE_ROUTER,
        "executionDuration": 60,
        "gasCosts": [{"amountUSD": "0.12"}, {"amountUSD": "0.03"}],
    },
    "transactionRequest": {
        "to": BRIDGE_ROUTER,
        "data": "0xa6010a66",
        "value": "0x0",
        "gasLimit": "0x61a80",
    },
}


class Upstream:
    """Records requests and answers like an RPC node, Li.Fi, custody and CoinGecko."""

    def __init__(self) -> None:
        self.rpc_calls: list[dict[str, Any]] = []
        self.queries: list[dict[str, str]] = []
        self.signed: list[dict[str, Any]] = []
        self.api_keys: list[str | None] = []
        self.hits: dict[str, int] = {}
        self.broadcast_reply: str | None = None

    def _hit(self, name: str) -> int:
        self.hits[name] = self.hits.get(name, 0) + 1
        return self.hits[name]

    async def rpc(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.rpc_calls.append(body)
        method, params = body["method"], body["params"]
        if method == "eth_sendRawTransaction":
            return self._broadcast(body)
        if method == "eth_call" and params[0]["to"] == REVERTER:
            error = {"code": 3, "message": "execution reverted", "data": PAUSED}
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": error})
        results = {
            "eth_gasPrice": "0x3b9aca00",
            "eth_getBalance": hex(10**18),
            "eth_getTransactionCount": "0x7",
            "eth_estimateGas": "0x5208",
            "eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x10", "gasUsed": "0x5208"},
        }
        if method == "eth_call":
            result = "0x" + format(5_000_000, "064x")
        else:
            result = results[method]
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": result})

    def _broadcast(self, body: dict[str, Any]) -> web.Response:
        self._hit("broadcast")
        if self.broadcast_reply == "lost":
            return web.Response(status=502)
        if self.broadcast_reply:
            error = {"code": -32000, "message": self.broadcast_reply}
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": error})
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": "0xabc"})

    async def quote(self, request: web.Request) -> web.Response:
        self.queries.append(dict(request.query))
        return web.json_response(QUOTE)

    async def status(self, request: web.Request) -> web.Response:
        if request.query["txHash"] == "0xmissing":
            return web.json_response({"message": "not found"}, status=404)
        return web.json_response(
            {"status": "DONE", "substatus": "COMPLETED", "receiving": {"txHash": "0xfeed"}, "tool": "across"}
        )

    async def sign(self, request: web.Request) -> web.Response:
        self.api_keys.append(request.headers.get("X-API-Key"))
        self.signed.append((await request.json())["transaction"])
        return web.json_response({"signedTransaction": SIGNED})

    async def price(self, request: web.Request) -> web.Response:
        self._hit("price")
        return web.json_response({request.query["ids"]: {"usd": 2500.5}})

    async def flaky(self, request: web.Request) -> web.Response:
        if self._hit("flaky") == 1:
            return web.json_response({"error": "busy"}, status=503)
        return web.json_response({"ok": True})

    async def down(self, request: web.Request) -> web.Response:
        self._hit("down")
        return web.Response(status=500)

    async def bad_request(self, request: web.Request) -> web.Response:
        self._hit("bad")
        return web.json_response({"error": "bad"}, status=400)

    async def not_json(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>oops</html>")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/rpc/{chain}", self.rpc)
        app.router.add_get("/lifi/quote", self.quote)
        app.router.add_get("/lifi/status", self.status)
        app.router.add_post("/custody/wallets/{wallet_id}/sign-transaction", self.sign)
        app.router.add_get("/gecko/simple/price", self.price)
        app.router.add_get("/flaky", self.flaky)
        app.router.add_get("/down", self.down)
        app.router.add_get("/bad", self.bad_request)
        app.router.add_get("/not-json", self.not_json)
        return app


def with_upstream(scenario):
    async def main():
        upstream = Upstream()
        async with test_utils.TestServer(upstream.app()) as server:
            return await scenario(upstream, lambda path: str(server.make_url(path)))

    return asyncio.run(main())


def test_rpc_reads() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with JsonRpcClient({"Base": url("/rpc/base")}) as rpc:
            assert await rpc.gas_price("base") == 10**9
            assert await rpc.get_balance("base", WALLET.address) == 10**18
            assert await rpc.erc20_balance("base", "0x8335", WALLET.address) == 5_000_000
            receipt = await rpc.wait_for_transaction("base", "0xabc", interval=0, timeout=1)
            assert (receipt.status, receipt.block_number, receipt.gas_used) == ("success", 16, 21_000)
        call = upstream.rpc_calls[2]
        assert call["method"] == "eth_call"
        assert call["params"][0]["data"].startswith(ERC20_SELECTORS["balanceOf"])
        assert call["params"][1] == "latest"

    with_upstream(scenario)


def test_rpc_revert_carries_payload() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with JsonRpcClient({"base": url("/rpc/base")}) as rpc:
            with pytest.raises(RpcError) as info:
                await rpc.simulate(TransactionRequest(chain="base", to=REVERTER, data="0x"), WALLET.address)
            with pytest.raises(UpstreamError):
                rpc.url_for("solana")
        assert info.value.code == 3
        assert decode_revert_reason(info.value.data) == "Pool: paused"

    with_upstream(scenario)


def test_http_retries_and_status_errors() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with HttpClient(retries=2, base_delay=0) as client:
            assert await client.get_json(url("/flaky")) == {"ok": True}
            with pytest.raises(HttpStatusError) as info:
                await client.get_json(url("/bad"))
            assert info.value.status == 400
            with pytest.raises(UpstreamError, match="after 2 attempts"):
                await client.get_json(url("/down"))
            with pytest.raises(UpstreamError, match="malformed JSON"):
                await client.get_json(url("/not-json"))
        assert upstream.hits == {"flaky": 2, "bad": 1, "down": 2}

    with_upstream(scenario)


def test_session_requires_context_manager() -> None:
    with pytest.raises(RuntimeError):
        HttpClient().session


def test_lifi_bridge_quote_and_status() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with LiFiClient(url("/lifi/"), slippage_pct=0.5) as lifi:
            quote = await lifi.quote_bridge(
                "arbitrum", "base", "0xaf88", "0x8335", 100_000_000, WALLET.address
            )
            done = await lifi.bridge_status("0xabc", "arbitrum", "base")
            missing = await lifi.bridge_status("0xmissing", "arbitrum", "base")

        assert upstream.queries[0] == {
            "fromChain": "42161",
            "toChain": "8453",
            "fromToken": "0xaf88",
            "toToken": "0x8335",
            "fromAmount": "100000000",
            "fromAddress": WALLET.address,
            "slippage": "0.005",
        }
        assert (quote.from_chain, quote.to_chain, quote.tool) == ("arbitrum", "base", "across")
        assert (quote.to_amount_raw, quote.to_amount_min_raw) == (99_950_000, 99_450_250)
        assert quote.approval_address == BRIDGE_ROUTER
        assert quote.estimated_duration_s == 60
        assert quote.estimated_gas_usd == pytest.approx(0.15)
        tx = quote.transaction_request
        assert (tx.chain, tx.to, tx.value, tx.gas_limit) == ("arbitrum", BRIDGE_ROUTER, 0, 400_000)
        assert (done.state, done.receiving_tx_hash) == (BridgeStatusState.DONE, "0xfeed")
        assert missing.state == BridgeStatusState.NOT_FOUND

    with_upstream(scenario)


def test_status_parsing_edge_cases() -> None:
    assert parse_status({"status": "INVALID"}).state == BridgeStatusState.FAILED
    assert parse_status({"status": "SOMETHING_NEW"}).state == BridgeStatusState.PENDING
    assert parse_status({}).receiving_tx_hash is None


def test_sender_fills_fields_and_signs_remotely() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with JsonRpcClient({"base": url("/rpc/base")}) as rpc, CustodyClient(
            url("/custody"), api_key="secret"
        ) as custody:
            sender = TransactionSender(rpc, custody)
            tx_hash = await sender.send(
                WALLET, TransactionRequest(chain="Base", to=BRIDGE_ROUTER, data="0x1234", value=5)
            )
            with pytest.raises(ValueError):
                await sender.send(WALLET, TransactionRequest(chain="solana", to=BRIDGE_ROUTER))

        assert tx_hash == "0xabc"
        assert upstream.api_keys == ["secret"]
        (unsigned,) = upstream.signed
        assert unsigned == {
            "chainId": 8453,
            "from": WALLET.address,
            "to": BRIDGE_ROUTER,
            "data": "0x1234",
            "value": "0x5",
            "nonce": "0x7",
            "gas": hex(21_000 * 120 // 100),
            "gasPrice": "0x3b9aca00",
        }
        assert upstream.rpc_calls[-1]["params"] == [SIGNED]

    with_upstream(scenario)


def test_prices_cache_and_fallback() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        async with CoinGeckoPriceFeed(url("/gecko"), fallback_usd=3000.0) as prices:
            assert await prices.native_price_usd("base") == 2500.5
            assert await prices.native_price_usd("arbitrum") == 2500.5
            assert await prices.native_price_usd("fantom") == 3000.0
        async with CoinGeckoPriceFeed(url("/missing"), fallback_usd=1234.0, retries=1) as broken:
            assert await broken.native_price_usd("base") == 1234.0
        # base and arbitrum share the ethereum price
        assert upstream.hits["price"] == 1

    with_upstream(scenario)


def test_transaction_hash_is_keccak_of_payload() -> None:
    empty = "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    assert transaction_hash("0x") == empty
    assert transaction_hash(SIGNED) != transaction_hash(SIGNED + "00")


@pytest.mark.parametrize("reply", ["lost", "already known"])
def test_broadcast_is_never_repeated(reply: str) -> None:
    async def scenario(upstream: Upstream, url) -> str:
        upstream.broadcast_reply = reply
        async with JsonRpcClient({"base": url("/rpc/base")}, retries=3) as rpc, CustodyClient(
            url("/custody")
        ) as custody:
            tx_hash = await TransactionSender(rpc, custody).send(
                WALLET, TransactionRequest(chain="base", to=BRIDGE_ROUTER, gas_limit=50_000)
            )
        assert upstream.hits["broadcast"] == 1
        return tx_hash

    # the node may hold the transaction, so its locally computed hash is reported
    assert with_upstream(scenario) == transaction_hash(SIGNED)


def test_rejected_broadcast_raises() -> None:
    async def scenario(upstream: Upstream, url) -> None:
        upstream.broadcast_reply = "nonce too low: next nonce 8, tx nonce 7"
        async with JsonRpcClient({"base": url("/rpc/base")}) as rpc, CustodyClient(
            url("/custody")
        ) as custody:
            with pytest.raises(RpcError, match="nonce too low"):
                await TransactionSender(rpc, custody).send(
                    WALLET, TransactionRequest(chain="base", to=BRIDGE_ROUTER, gas_limit=50_000)
                )
        assert upstream.hits["broadcast"] == 1

    with_upstream(scenario)


def test_no_sleep_after_final_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    waits: list[float] = []

    async def record_sleep(delay: float) -> None:
        waits.append(delay)

    monkeypatch.setattr(
        http_module, "asyncio", SimpleNamespace(sleep=record_sleep, TimeoutError=asyncio.TimeoutError)
    )

    async def scenario(upstream: Upstream, url) -> None:
        async with HttpClient(retries=3, base_delay=0.5) as client:
            with pytest.raises(UpstreamError, match="after 3 attempts"):
                await client.get_json(url("/down"))
            with pytest.raises(UpstreamError, match="after 1 attempts"):
                await client.request_json("GET", url("/down"), retry=False)
        assert upstream.hits["down"] == 4

    with_upstream(scenario)
    assert waits == [0.5, 1.0]
