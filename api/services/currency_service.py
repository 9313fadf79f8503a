"""
Currency conversion for expense amounts.

Expenses are converted once, at creation, into the submitter's company
currency. Rates come from the configured FX API when enabled, otherwise
(or when the API is unreachable) from a static fallback table.
"""

from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from api.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

FALLBACK_RATES = {
    "USD_EUR": Decimal("0.85"), "USD_GBP": Decimal("0.73"),
    "USD_INR": Decimal("83.0"), "USD_CAD": Decimal("1.35"),
    "EUR_USD": Decimal("1.18"), "EUR_GBP": Decimal("0.86"), "EUR_INR": Decimal("97.0"),
    "GBP_USD": Decimal("1.37"), "GBP_EUR": Decimal("1.16"), "GBP_INR": Decimal("113.0"),
    "INR_USD": Decimal("0.012"), "INR_EUR": Decimal("0.010"), "INR_GBP": Decimal("0.0088"),
    "CAD_USD": Decimal("0.74"),
}

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.FX_API_TIMEOUT_SECONDS, connect=3.0),
        )
    return _http_client


class _FxRetryableError(Exception):
    """Raised for 5xx or network errors that warrant a retry."""


@retry(
    retry=retry_if_exception_type(_FxRetryableError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
async def _fetch_rates(base_currency: str) -> dict:
    client = get_http_client()
    try:
        response = await client.get(f"{settings.FX_API_URL}/{base_currency}")
    except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
        logger.warning("fx_api_network_error_retrying", error=str(exc), base=base_currency)
        raise _FxRetryableError(str(exc)) from exc

    if response.status_code >= 500:
        raise _FxRetryableError(f"FX API returned {response.status_code}")
    response.raise_for_status()
    return response.json().get("rates", {})


def fallback_rate(from_currency: str, to_currency: str) -> Decimal:
    rate = FALLBACK_RATES.get(f"{from_currency}_{to_currency}")
    if rate is None:
        logger.warning(
            "fx_rate_unknown_pair_defaulting",
            from_currency=from_currency,
            to_currency=to_currency,
        )
        return Decimal("1")
    return rate


async def get_fx_rate(from_currency: str, to_currency: str) -> Decimal:
    """Rate converting from_currency into to_currency."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    if from_currency == to_currency:
        return Decimal("1")

    if settings.FX_API_ENABLED:
        try:
            rates = await _fetch_rates(from_currency)
            rate = rates.get(to_currency)
            if rate is not None:
                return Decimal(str(rate))
            logger.warning(
                "fx_rate_missing_from_api",
                from_currency=from_currency,
                to_currency=to_currency,
            )
        except (_FxRetryableError, httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "fx_rate_fallback",
                from_currency=from_currency,
                to_currency=to_currency,
                error=str(exc),
            )

    return fallback_rate(from_currency, to_currency)


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(amount) * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


async def convert_amount(
    amount: Decimal, from_currency: str, to_currency: str
) -> Decimal:
    rate = await get_fx_rate(from_currency, to_currency)
    return convert(amount, rate)
