"""
Payments.

============================================================
PURPOSE
============================================================
Creates payment intents for ticket purchases and formats prices
for display.

Amounts are handled as Decimal and sent to the endpoint in integer
minor units (cents).

============================================================
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

import aiohttp

from core.config import IntegrationConfig
from core.exceptions import PaymentIntentError


logger = logging.getLogger(__name__)


CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def to_minor_units(amount: Union[Decimal, int, float, str]) -> int:
    """Convert a major-unit amount to integer cents."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(price: Union[Decimal, int, float, str, None], currency: str = "USD") -> str:
    """Price with currency symbol and thousands separators, e.g. $1,234.50."""
    try:
        value = Decimal(str(price if price is not None else 0))
    except InvalidOperation:
        value = Decimal("0")
    value = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    sign = "-" if value < 0 else ""
    body = f"{abs(value):,.2f}"
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{body} {currency.upper()}"


class PaymentClient:
    """
    Client for the payment-intent endpoint.
    """

    def __init__(
        self,
        config: Optional[IntegrationConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config or IntegrationConfig()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.http_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def create_payment_intent(
        self,
        amount: Union[Decimal, int, float, str],
        event_id: str,
    ) -> Dict[str, Any]:
        """
        Create a payment intent for a ticket.

        Returns:
            The endpoint's JSON answer (typically holding clientSecret)

        Raises:
            ValueError: For a non-positive amount
            PaymentIntentError: On non-200 status, bad JSON or connection failure
        """
        cents = to_minor_units(amount)
        url = self._config.resolve(self._config.payment_intent_url)
        payload = {"amount": cents, "eventId": event_id}

        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise PaymentIntentError(
                        f"Payment intent failed: {response.status} - {body[:200]}",
                        endpoint=url,
                        status=response.status,
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise PaymentIntentError(f"Payment endpoint unreachable: {e}", endpoint=url, cause=e)
        except asyncio.TimeoutError as e:
            raise PaymentIntentError("Payment endpoint timed out", endpoint=url, cause=e)
        except ValueError as e:
            raise PaymentIntentError(f"Payment endpoint returned invalid JSON: {e}", endpoint=url, cause=e)

        if not isinstance(data, dict):
            raise PaymentIntentError("Payment endpoint returned an unexpected body", endpoint=url)

        logger.info(f"Payment intent created for event {event_id}: {cents} cents")
        return data


__all__ = [
    "to_minor_units",
    "format_price",
    "PaymentClient",
]
