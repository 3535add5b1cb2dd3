"""Tests for the DexScreener quote/metadata client."""

from unittest.mock import AsyncMock

import pytest

from token_signal_tracker.providers.dexscreener import DexScreenerClient
from token_signal_tracker.providers.http import ProviderNotFoundError


@pytest.fixture
def pairs_payload() -> dict:
    return {
        "pairs": [
            {
                "pairAddress": "ThinPool",
                "priceUsd": "0.0011",
                "liquidity": {"usd": 1_000},
                "fdv": 1_100_000,
                "marketCap": 900_000,
                "volume": {"h24": 10},
                "baseToken": {"symbol": "THIN", "name": "Thin"},
            },
            {
                "pairAddress": "DeepPool",
                "priceUsd": "0.001",
                "liquidity": {"usd": 250_000},
                "fdv": 1_000_000,
                "marketCap": 800_000,
                "volume": {"h24": 52_000.5},
                "baseToken": {"symbol": "DEEP", "name": "Deep Token"},
            },
        ]
    }


@pytest.fixture
def client(pairs_payload: dict) -> DexScreenerClient:
    c = DexScreenerClient(requests_per_second=100)
    c._request_json = AsyncMock(return_value=pairs_payload)
    return c


class TestDexScreenerClient:
    @pytest.mark.asyncio
    async def test_quote_from_most_liquid_pair(self, client: DexScreenerClient, sample_mint: str) -> None:
        quote = await client.get_quote(sample_mint)
        assert quote.price == pytest.approx(0.001)
        assert quote.source == "dexscreener"
        assert quote.timestamp.tzinfo is not None
        client._request_json.assert_awaited_with(f"/tokens/{sample_mint}")

    @pytest.mark.asyncio
    async def test_token_meta(self, client: DexScreenerClient, sample_mint: str) -> None:
        meta = await client.get_token_meta(sample_mint)
        assert meta.supply == pytest.approx(1_000_000_000)
        assert meta.live_market_cap == 800_000
        assert meta.best_market_cap == 800_000
        assert meta.volume_24h == pytest.approx(52_000.5)
        assert meta.liquidity == 250_000
        assert meta.symbol == "DEEP"

    @pytest.mark.asyncio
    async def test_pool_address(self, client: DexScreenerClient, sample_mint: str) -> None:
        assert await client.get_pool_address(sample_mint) == "DeepPool"

    @pytest.mark.asyncio
    async def test_no_pairs_raises_not_found(self, sample_mint: str) -> None:
        client = DexScreenerClient(requests_per_second=100)
        client._request_json = AsyncMock(return_value={"pairs": None})
        with pytest.raises(ProviderNotFoundError):
            await client.get_quote(sample_mint)
        assert await client.get_pool_address(sample_mint) is None

    @pytest.mark.asyncio
    async def test_missing_price_raises_not_found(self, sample_mint: str) -> None:
        client = DexScreenerClient(requests_per_second=100)
        client._request_json = AsyncMock(return_value={"pairs": [{"priceUsd": None}]})
        with pytest.raises(ProviderNotFoundError):
            await client.get_quote(sample_mint)
