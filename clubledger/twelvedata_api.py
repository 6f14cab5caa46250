from dataclasses import dataclass, asdict
from dacite import from_dict
from decimal import Decimal
from typing import Dict, List, Sequence, Union

import requests

from .cells import parse_number
from .config import QuoteSettings
from .errors import QuoteAPIError


@dataclass
class QuotePrice:
    symbol: str
    price: Decimal


def parse_price_response(symbols: Sequence[str], data) -> List[QuotePrice]:
    """
    Turn a /price reply into quotes.

    A single-symbol request answers {"price": "123.45"}; a batch answers
    {"AAPL": {"price": "..."}, "MSFT": {...}}. Entries without a usable price
    are skipped without affecting the rest of the batch.
    """
    quotes: List[QuotePrice] = []

    if not isinstance(data, dict):
        return quotes

    if isinstance(data.get("price"), str):
        price = parse_number(data["price"])
        if price is not None and symbols:
            quotes.append(QuotePrice(symbols[0], price))
        return quotes

    for symbol, payload in data.items():
        if not isinstance(payload, dict):
            continue
        raw = payload.get("price")
        if not isinstance(raw, str):
            continue
        price = parse_number(raw)
        if price is not None:
            quotes.append(QuotePrice(symbol, price))

    return quotes


class TwelveDataAPI:

    def __init__(self, settings: Union[QuoteSettings, Dict]) -> None:
        self.parse_settings(settings)

    def parse_settings(self, settings: Union[QuoteSettings, Dict]):
        if isinstance(settings, QuoteSettings):
            settings = asdict(settings)
        self.settings: QuoteSettings = from_dict(data_class=QuoteSettings, data=settings)

    def require_api_key(self) -> str:
        if not self.settings.api_key:
            raise QuoteAPIError("TWELVEDATA_API_KEY is not set.")
        return self.settings.api_key

    def build_params(self, symbols: Sequence[str]) -> Dict[str, str]:
        return {
            "symbol": ",".join(symbols),
            "apikey": self.require_api_key(),
        }

    def make_request(self, symbols: Sequence[str]) -> requests.Response:
        params = self.build_params(symbols)
        try:
            return requests.get(
                self.settings.endpoint,
                params=params,
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as e:
            raise QuoteAPIError(f"Twelve Data request failed: {e}")

    def build_response(self, symbols: Sequence[str], response: requests.Response) -> List[QuotePrice]:
        if response.status_code != 200:
            raise QuoteAPIError(f"Twelve Data request failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise QuoteAPIError("Twelve Data returned a non-JSON response")

        if isinstance(data, dict) and data.get("status") == "error":
            raise QuoteAPIError(data.get("message") or "Twelve Data error")

        return parse_price_response(symbols, data)

    def fetch_prices(self, symbols: Sequence[str]) -> List[QuotePrice]:
        """One batched request for every symbol."""
        response = self.make_request(symbols)
        return self.build_response(symbols, response)

