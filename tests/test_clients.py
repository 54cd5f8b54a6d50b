import asyncio
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

from token_admission_bundle.admission.coingecko_client import CoinGeckoClient
from token_admission_bundle.admission.dexscreener_client import DexScreenerClient
from token_admission_bundle.admission.dispatcher import IngestionDispatcher
from token_admission_bundle.admission.errors import ConfigurationError, SourceError, UpstreamDependencyError
from token_admission_bundle.admission.models import IngestionRequest

from tests.fakes import EVM_ADDR, pair


class UpstreamServerTestCase(unittest.IsolatedAsyncioTestCase):
    """Runs a local aiohttp app standing in for the registry, DEX and ingestion endpoints."""

    async def asyncSetUp(self):
        self.hits = {}
        self.seen_headers = []
        self.ingested = []
        self.fetcher_calls = []
        self.ingestion_status = 200
        self.search_status = 200

        app = web.Application()
        app.router.add_get("/api/v3/search", self._search)
        app.router.add_get("/api/v3/coins/{coin_id}", self._coin)
        app.router.add_get("/latest/dex/tokens/{address}", self._tokens)
        app.router.add_post("/functions/v1/project-ingestion", self._ingest)
        app.router.add_post("/functions/v1/whitepaper-fetcher", self._fetcher)

        self.server = TestServer(app)
        await self.server.start_server()
        self.base = f"http://{self.server.host}:{self.server.port}"

    async def asyncTearDown(self):
        await self.server.close()

    def _hit(self, key):
        self.hits[key] = self.hits.get(key, 0) + 1

    async def _search(self, request):
        self._hit("search")
        self.seen_headers.append(dict(request.headers))
        if self.search_status != 200:
            return web.Response(status=self.search_status, text="slow down")
        return web.json_response({"coins": [{"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"}, {"symbol": "noid"}]})

    async def _coin(self, request):
        self._hit("coin")
        coin_id = request.match_info["coin_id"]
        if coin_id == "bitcoin":
            return web.json_response({
                "id": "bitcoin",
                "symbol": "btc",
                "name": "Bitcoin",
                "platforms": {"": ""},
                "links": {"homepage": ["", "https://bitcoin.org"], "whitepaper": "https://bitcoin.org/bitcoin.pdf"},
                "market_data": {"market_cap": {"usd": 1.2e12}},
                "image": {"large": "https://img/btc.png"},
            })
        if coin_id == "usd-coin":
            return web.json_response({
                "id": "usd-coin",
                "symbol": "usdc",
                "name": "USDC",
                "platforms": {"ethereum": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"},
                "links": {"homepage": ["https://www.circle.com/usdc"]},
                "market_data": {"market_cap": {"usd": None}},
            })
        if coin_id == "garbled":
            return web.Response(text="<html>oops</html>", content_type="text/html")
        return web.json_response({"error": "coin not found"}, status=404)

    async def _tokens(self, request):
        self._hit("tokens")
        address = request.match_info["address"]
        if address.lower() == EVM_ADDR.lower():
            return web.json_response({"pairs": [pair(EVM_ADDR, "ABC", "Abc", 1_000)]})
        return web.json_response({"pairs": None})

    async def _ingest(self, request):
        body = await request.json()
        self.ingested.append((request.headers.get("Authorization"), body))
        if self.ingestion_status != 200:
            return web.Response(status=self.ingestion_status, text="E" * 500)
        return web.json_response({"project_id": "proj-9", "market_cap": "1000000", "price_usd": 0.5})

    async def _fetcher(self, request):
        self.fetcher_calls.append(await request.json())
        return web.json_response({"ok": True})


class CoinGeckoClientTests(UpstreamServerTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client = CoinGeckoClient(f"{self.base}/api/v3", api_key="demo-key", min_interval=0)

    async def asyncTearDown(self):
        await self.client.close()
        await super().asyncTearDown()

    async def test_search_filters_entries_without_id_and_caches(self):
        first = await self.client.search("btc")
        second = await self.client.search("btc")
        self.assertEqual([c["id"] for c in first], ["bitcoin"])
        self.assertEqual(first, second)
        self.assertEqual(self.hits["search"], 1)
        self.assertEqual(self.seen_headers[0].get("x-cg-demo-api-key"), "demo-key")

    async def test_native_coin_details(self):
        d = await self.client.coin_details("bitcoin")
        self.assertEqual(d["symbol"], "BTC")
        self.assertTrue(d["is_native"])
        self.assertEqual(d["platforms"], {})
        self.assertEqual(d["website"], "https://bitcoin.org")
        self.assertEqual(d["whitepaper"], "https://bitcoin.org/bitcoin.pdf")
        self.assertEqual(d["market_cap"], 1.2e12)
        self.assertEqual(d["image"], "https://img/btc.png")

    async def test_contract_coin_details(self):
        d = await self.client.coin_details("usd-coin")
        self.assertFalse(d["is_native"])
        self.assertIn("ethereum", d["platforms"])
        self.assertIsNone(d["market_cap"])

    async def test_details_never_cached(self):
        await self.client.coin_details("bitcoin")
        await self.client.coin_details("bitcoin")
        self.assertEqual(self.hits["coin"], 2)

    async def test_missing_coin_is_none(self):
        self.assertIsNone(await self.client.coin_details("does-not-exist"))

    async def test_undecodable_body_is_source_error(self):
        with self.assertRaises(SourceError):
            await self.client.coin_details("garbled")

    async def test_rate_limited_is_source_error(self):
        self.search_status = 429
        with self.assertRaises(SourceError) as ctx:
            await self.client.search("eth")
        self.assertEqual(ctx.exception.status, 429)

    async def test_breaker_fails_fast_after_repeated_429s(self):
        self.search_status = 429
        for i in range(5):
            with self.assertRaises(SourceError):
                await self.client.search(f"q{i}")
        with self.assertRaises(SourceError):
            await self.client.search("q-final")
        self.assertEqual(self.hits["search"], 5)


class DexScreenerClientTests(UpstreamServerTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client = DexScreenerClient(f"{self.base}/latest/dex", min_interval=0)

    async def asyncTearDown(self):
        await self.client.close()
        await super().asyncTearDown()

    async def test_pairs_for_listed_token(self):
        pairs = await self.client.fetch_pairs(EVM_ADDR)
        self.assertEqual(len(pairs), 1)
        self.assertEqual(pairs[0]["baseToken"]["symbol"], "ABC")

    async def test_unlisted_token_has_no_pairs(self):
        self.assertEqual(await self.client.fetch_pairs("0x" + "1" * 40), [])

    async def test_unreachable_host_is_source_error(self):
        client = DexScreenerClient("http://127.0.0.1:1/latest/dex", min_interval=0, timeout=2)
        try:
            with self.assertRaises(SourceError):
                await client.fetch_pairs(EVM_ADDR)
        finally:
            await client.close()


class DispatcherTests(UpstreamServerTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.dispatcher = IngestionDispatcher(self.base, "service-key")
        self.request = IngestionRequest(
            contract_address=EVM_ADDR.lower(),
            network="ethereum",
            symbol="ABC",
            name="Abc",
            website_url="https://abc.xyz",
            pool_address="0xpool",
            market_cap=None,
            liquidity_usd=1_000,
        )

    async def asyncTearDown(self):
        await self.dispatcher.close()
        await super().asyncTearDown()

    def test_requires_credentials(self):
        with self.assertRaises(ConfigurationError):
            IngestionDispatcher("", "key")
        with self.assertRaises(ConfigurationError):
            IngestionDispatcher("https://ingest.example", "")

    async def test_dispatch_posts_snake_case_payload(self):
        result = await self.dispatcher.dispatch(self.request)
        self.assertEqual(result.project_id, "proj-9")
        self.assertEqual(result.market_cap, 1_000_000.0)
        self.assertEqual(result.price_usd, 0.5)

        auth, body = self.ingested[0]
        self.assertEqual(auth, "Bearer service-key")
        self.assertEqual(body["contract_address"], EVM_ADDR.lower())
        self.assertEqual(body["source"], "manual")
        self.assertTrue(body["trigger_analysis"])
        self.assertEqual(body["pool_address"], "0xpool")

    async def test_failed_ingestion_is_upstream_error(self):
        self.ingestion_status = 500
        with self.assertRaises(UpstreamDependencyError) as ctx:
            await self.dispatcher.dispatch(self.request)
        self.assertTrue(ctx.exception.message.startswith("Ingestion failed: "))
        self.assertLessEqual(len(ctx.exception.message), len("Ingestion failed: ") + 200)
        self.assertEqual(ctx.exception.http_status, 500)

    async def test_whitepaper_fetch_is_fire_and_forget(self):
        task = self.dispatcher.trigger_whitepaper_fetch("proj-9")
        self.assertIsInstance(task, asyncio.Task)
        await task
        self.assertEqual(self.fetcher_calls, [{"projectId": "proj-9", "skipAnalysis": False}])


if __name__ == "__main__":
    unittest.main()
