"""
Advisory Agent for Finance Pro

DESIGN DECISION: Gemini is used for two best-effort jobs:
1. Estimating current prices for held symbols
2. Writing one short line of advice for the dashboard

BOUNDARIES:
- The agent NEVER mutates ledger state; it only returns suggestions
- Price estimates are approximations, not quotes; the ledger decides
  which of them apply (by matching symbols)
- Every failure degrades to "no data": an empty list or a fixed placeholder

The app must be fully usable without an API key.
"""

import json
from decimal import Decimal
from typing import Optional

import google.generativeai as genai
import structlog

from finance_pro.audit import AuditLogger
from finance_pro.config import GeminiSettings, get_settings
from finance_pro.models.audit import AuditEventBuilder
from finance_pro.models.finance import PriceUpdate


logger = structlog.get_logger(__name__)

NOT_CONFIGURED_ADVICE = "Add a Gemini API key to get personalised financial advice."
UNAVAILABLE_ADVICE = "Advice is temporarily unavailable."
DEFAULT_ADVICE = "Keep tracking every expense. Good habits compound!"


class AdvisoryAgent:
    """
    AI agent behind the price refresh and the dashboard advice banner.

    RESPONSIBILITIES:
    - Ask for approximate prices of a list of symbols
    - Turn three headline numbers into a short suggestion

    If Gemini is not configured the agent stays disabled and answers every
    request with its fallback.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._model = None
        self._audit_logger = audit_logger
        self._settings = settings
        if self._settings is None:
            try:
                self._settings = get_settings().gemini
            except Exception as e:
                logger.warning("gemini_not_configured", reason=str(e))
        if self._settings is not None:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @property
    def is_configured(self) -> bool:
        return self._model is not None

    def _report_failure(self, operation: str, error: Exception) -> None:
        logger.error("gemini_request_failed", operation=operation, error=str(error))
        if self._audit_logger:
            self._audit_logger.log(
                AuditEventBuilder.external_service_error("gemini", f"{operation}: {error}")
            )

    async def estimate_prices(self, symbols: list[str]) -> list[PriceUpdate]:
        """
        Ask for the approximate current price of each symbol.

        Returns as many updates as could be resolved; possibly none.
        """
        symbols = [s.strip().upper() for s in symbols if s and s.strip()]
        if not self.is_configured or not symbols:
            return []

        prompt = f"""I have a portfolio with these stock symbols: {', '.join(symbols)}.

Provide the current approximate market price for each, in the currency the
stock normally trades in (e.g. TWD for Taiwan stocks, USD for US stocks).
If you cannot get a real-time price, estimate from the last closing price
you know.

Respond with ONLY a JSON array where each object has:
- "symbol": the stock symbol, exactly as given
- "currentPrice": the price as a number
- "name": a short display name for the stock
"""

        try:
            response = await self._model.generate_content_async(
                prompt,
                generation_config={"response_mime_type": "application/json"},
            )
            text = response.text.strip()
        except Exception as e:
            self._report_failure("estimate_prices", e)
            return []

        return self.parse_price_updates(text)

    @staticmethod
    def parse_price_updates(text: str) -> list[PriceUpdate]:
        """
        Extract price updates from a model response.

        Tolerates prose around the JSON array; items that don't validate
        are dropped individually.
        """
        start = text.find("[")
        end = text.rfind("]") + 1
        if start < 0 or end <= start:
            return []

        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            logger.warning("price_response_unparseable", response=text[:200])
            return []

        updates = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                updates.append(PriceUpdate.model_validate(item))
            except ValueError:
                logger.debug("price_item_skipped", item=item)
        return updates

    async def summarize(
        self,
        net_worth: Decimal,
        monthly_expense: Decimal,
        top_expense_category: Optional[str],
    ) -> str:
        """
        One short line of advice for the dashboard.

        Never fails: falls back to a fixed message.
        """
        if not self.is_configured:
            return NOT_CONFIGURED_ADVICE

        prompt = f"""As a professional financial advisor, give one short piece of
encouragement or advice, written in {self._settings.advice_language}, based on:
Net worth: {net_worth:,.0f}
Spending this month: {monthly_expense:,.0f}
Top spending category: {top_expense_category or 'none'}

Keep the tone professional and friendly, no more than 50 words."""

        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text.strip()
        except Exception as e:
            self._report_failure("summarize", e)
            return UNAVAILABLE_ADVICE

        return text or DEFAULT_ADVICE
