"""
Tests for the advisory agent.

Gemini is never called: the model object is replaced with a mock.
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from finance_pro.agents import (
    DEFAULT_ADVICE,
    NOT_CONFIGURED_ADVICE,
    UNAVAILABLE_ADVICE,
    AdvisoryAgent,
)
from finance_pro.config import GeminiSettings
from finance_pro.models.audit import AuditEventType


def make_agent(response_text=None, error=None, audit_logger=None) -> AdvisoryAgent:
    with patch("finance_pro.agents.advisor.genai"):
        agent = AdvisoryAgent(GeminiSettings(api_key="test-key"), audit_logger=audit_logger)
    model = MagicMock()
    if error is not None:
        model.generate_content_async = AsyncMock(side_effect=error)
    else:
        model.generate_content_async = AsyncMock(return_value=MagicMock(text=response_text))
    agent._model = model
    return agent


def make_unconfigured_agent() -> AdvisoryAgent:
    with patch("finance_pro.agents.advisor.get_settings", side_effect=ValueError("GEMINI_API_KEY missing")):
        return AdvisoryAgent()


class TestParsePriceUpdates:
    """Tests for lenient response parsing."""

    def test_plain_array(self):
        """Test a clean JSON array."""
        updates = AdvisoryAgent.parse_price_updates(
            '[{"symbol": "AAPL", "currentPrice": 190.5, "name": "Apple"}]'
        )
        assert len(updates) == 1
        assert updates[0].symbol == "AAPL"
        assert updates[0].current_price == Decimal("190.5")
        assert updates[0].name == "Apple"

    def test_array_wrapped_in_prose(self):
        """Test text around the array is ignored."""
        text = 'Here you go:\n```json\n[{"symbol": "2330.tw", "currentPrice": 600}]\n```\nThanks'
        updates = AdvisoryAgent.parse_price_updates(text)
        assert [u.symbol for u in updates] == ["2330.TW"]

    def test_invalid_items_skipped(self):
        """Test bad items are dropped individually."""
        text = '[{"symbol": "AAPL", "currentPrice": "n/a"}, "junk", {"symbol": "MSFT", "currentPrice": 300}]'
        updates = AdvisoryAgent.parse_price_updates(text)
        assert [u.symbol for u in updates] == ["MSFT"]

    @pytest.mark.parametrize("text", ["", "no prices today", "[not json]", "] backwards ["])
    def test_garbage_yields_nothing(self, text):
        """Test unparseable responses."""
        assert AdvisoryAgent.parse_price_updates(text) == []


class TestEstimatePrices:
    """Tests for price estimation."""

    @pytest.mark.asyncio
    async def test_prompt_lists_symbols(self):
        """Test the request carries the symbol list."""
        agent = make_agent('[{"symbol": "AAPL", "currentPrice": 190}]')
        updates = await agent.estimate_prices(["AAPL", "msft"])

        assert [u.symbol for u in updates] == ["AAPL"]
        prompt = agent._model.generate_content_async.call_args.args[0]
        assert "AAPL, MSFT" in prompt

    @pytest.mark.asyncio
    async def test_empty_symbols_skip_call(self):
        """Test no request for an empty portfolio."""
        agent = make_agent("[]")
        assert await agent.estimate_prices([]) == []
        agent._model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_service_error_yields_nothing(self):
        """Test failures degrade to no data and are audited."""
        audit = MagicMock()
        agent = make_agent(error=RuntimeError("quota exceeded"), audit_logger=audit)

        assert await agent.estimate_prices(["AAPL"]) == []
        event = audit.log.call_args.args[0]
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert "quota exceeded" in event.error_message

    @pytest.mark.asyncio
    async def test_unconfigured_yields_nothing(self):
        """Test a disabled agent."""
        agent = make_unconfigured_agent()
        assert agent.is_configured is False
        assert await agent.estimate_prices(["AAPL"]) == []


class TestSummarize:
    """Tests for dashboard advice."""

    @pytest.mark.asyncio
    async def test_returns_model_text(self):
        """Test the happy path and prompt contents."""
        agent = make_agent("  Spend less on food.  ")
        advice = await agent.summarize(Decimal("1234567"), Decimal("4500"), "Food")

        assert advice == "Spend less on food."
        prompt = agent._model.generate_content_async.call_args.args[0]
        assert "1,234,567" in prompt
        assert "4,500" in prompt
        assert "Food" in prompt

    @pytest.mark.asyncio
    async def test_empty_response_gets_default(self):
        """Test blank output falls back to encouragement."""
        agent = make_agent("   ")
        assert await agent.summarize(Decimal("1"), Decimal("0"), None) == DEFAULT_ADVICE

    @pytest.mark.asyncio
    async def test_service_error_placeholder(self):
        """Test failures give the unavailable placeholder."""
        agent = make_agent(error=RuntimeError("boom"))
        assert await agent.summarize(Decimal("1"), Decimal("0"), None) == UNAVAILABLE_ADVICE

    @pytest.mark.asyncio
    async def test_unconfigured_placeholder(self):
        """Test missing key gives the configure placeholder."""
        agent = make_unconfigured_agent()
        assert await agent.summarize(Decimal("1"), Decimal("0"), None) == NOT_CONFIGURED_ADVICE
