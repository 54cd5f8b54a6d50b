import os
import tempfile
import unittest
from unittest import mock

from aiohttp.test_utils import TestClient, TestServer

from token_admission_bundle.admission.errors import ConfigurationError
from token_admission_bundle.admission.rate_limiter import RateLimiter
from token_admission_bundle.admission.server import create_app

from tests.fakes import (
    EVM_ADDR,
    FakeDexClient,
    FakeDispatcher,
    build_pipeline,
    pair,
)
from tests.test_resolvers import bittensor_registry


class ServerTestCase(unittest.IsolatedAsyncioTestCase):
    rate_limit = 50

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dex_client = FakeDexClient({EVM_ADDR: [pair(EVM_ADDR, "ABC", "Abc", 25_000, website="https://abc.xyz")]})
        self.dispatcher = FakeDispatcher()
        self.pipeline = build_pipeline(
            os.path.join(self._tmp.name, "projects.sqlite3"),
            registry_client=bittensor_registry(),
            dex_client=self.dex_client,
            dispatcher=self.dispatcher,
            rate_limiter=RateLimiter(max_requests=self.rate_limit),
        )
        self.client = TestClient(TestServer(create_app(pipeline=self.pipeline)))
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()
        self._tmp.cleanup()

    async def add_token(self, body, ip="1.1.1.1"):
        return await self.client.post("/add-token", json=body, headers={"X-Forwarded-For": ip})


class AddTokenEndpointTests(ServerTestCase):
    async def test_success(self):
        resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        self.assertEqual(resp.status, 200)
        data = await resp.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["tokenId"], "proj-1")
        self.assertEqual(data["analysisStatus"], "pending")

    async def test_invalid_json(self):
        resp = await self.client.post("/add-token", data="{not json", headers={"Content-Type": "application/json"})
        self.assertEqual(resp.status, 400)
        self.assertIn("error", await resp.json())

    async def test_validation_error(self):
        resp = await self.add_token({"contractAddress": "0x1234", "network": "ethereum"})
        self.assertEqual(resp.status, 400)
        self.assertEqual((await resp.json())["error"], "Invalid contract address format for the selected network.")

    async def test_not_found(self):
        resp = await self.add_token({"contractAddress": "0x" + "2" * 40, "network": "ethereum"})
        self.assertEqual(resp.status, 404)

    async def test_needs_website_payload(self):
        self.dex_client.pairs[EVM_ADDR.lower()] = [pair(EVM_ADDR, "ABC", "Abc", 25_000)]
        resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        self.assertEqual(resp.status, 400)
        data = await resp.json()
        self.assertTrue(data["needsWebsite"])
        self.assertEqual(data["symbol"], "ABC")
        self.assertEqual(data["liquidity"], 25_000)

    async def test_duplicate_is_409(self):
        await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        self.assertEqual(resp.status, 409)
        data = await resp.json()
        self.assertEqual(data["tokenId"], "proj-1")
        self.assertEqual(data["symbol"], "ABC")

    async def test_ingestion_failure_is_500(self):
        self.dispatcher.fail = True
        resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        self.assertEqual(resp.status, 500)
        self.assertTrue((await resp.json())["error"].startswith("Ingestion failed"))

    async def test_unexpected_error_is_500(self):
        self.dispatcher.error = RuntimeError("kaboom")
        with self.assertLogs("TokenAdmission", level="ERROR"):
            resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        self.assertEqual(resp.status, 500)
        self.assertEqual((await resp.json())["error"], "Unexpected error: kaboom")


class RateLimitEndpointTests(ServerTestCase):
    rate_limit = 2

    async def test_third_request_from_same_client_is_429(self):
        body = {"contractAddress": "0x" + "3" * 40, "network": "ethereum"}
        for _ in range(2):
            self.assertEqual((await self.add_token(body, ip="5.5.5.5")).status, 404)
        resp = await self.add_token(body, ip="5.5.5.5")
        self.assertEqual(resp.status, 429)
        self.assertEqual((await resp.json())["error"], "Rate limit exceeded. Please try again later.")
        self.assertEqual((await self.add_token(body, ip="6.6.6.6")).status, 404)

    async def test_malformed_bodies_count_against_the_client(self):
        headers = {"Content-Type": "application/json", "X-Forwarded-For": "7.7.7.7"}
        for _ in range(2):
            resp = await self.client.post("/add-token", data="{not json", headers=headers)
            self.assertEqual(resp.status, 400)
        resp = await self.client.post("/add-token", data="{not json", headers=headers)
        self.assertEqual(resp.status, 429)
        resp = await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"}, ip="7.7.7.7")
        self.assertEqual(resp.status, 429)
        self.assertEqual(self.dispatcher.requests, [])


class SearchEndpointTests(ServerTestCase):
    async def test_free_text(self):
        resp = await self.client.get("/search", params={"q": "bittensor"})
        self.assertEqual(resp.status, 200)
        data = await resp.json()
        self.assertEqual(data["candidates"][0]["symbol"], "TAO")
        self.assertEqual(data["candidates"][0]["source"], "registry")
        self.assertIsNone(data["defaultChoice"])

    async def test_address(self):
        resp = await self.client.get("/search", params={"q": EVM_ADDR, "network": "ethereum"})
        data = await resp.json()
        self.assertEqual(len(data["candidates"]), 1)
        self.assertEqual(data["candidates"][0]["source"], "dex-pair")
        self.assertEqual(data["candidates"][0]["confidence"], 50)

    async def test_short_query(self):
        resp = await self.client.get("/search", params={"q": "b"})
        self.assertEqual((await resp.json())["candidates"], [])


class WhitepaperEndpointTests(ServerTestCase):
    async def test_flow(self):
        resp = await self.client.post("/submit-whitepaper", json={"symbol": "ABC", "whitepaper_url": "https://abc.xyz/wp"})
        self.assertEqual(resp.status, 404)

        await self.add_token({"contractAddress": EVM_ADDR, "network": "ethereum"})
        resp = await self.client.post("/submit-whitepaper", json={"symbol": "ABC"})
        self.assertEqual(resp.status, 400)

        resp = await self.client.post("/submit-whitepaper", json={"symbol": "ABC", "whitepaper_url": "https://abc.xyz/wp"})
        self.assertEqual(resp.status, 200)
        self.assertTrue((await resp.json())["fetchTriggered"])
        self.assertEqual(self.dispatcher.fetches[0][0], "proj-1")


class AppFactoryTests(unittest.TestCase):
    def test_missing_credentials_fail_at_startup(self):
        with mock.patch.dict(os.environ, {"INGESTION_BASE_URL": "", "INGESTION_SERVICE_KEY": ""}):
            with self.assertRaises(ConfigurationError):
                create_app({})


if __name__ == "__main__":
    unittest.main()
