"""Country lookup for client IP addresses through ip-api.com."""

import ipaddress
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import httpx

from docqa.core.config import settings

logger = logging.getLogger(__name__)


def _is_public(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (address.is_private or address.is_loopback or address.is_link_local or address.is_reserved)


class GeoLocator:
    """Best-effort IP -> ISO country code, cached per process.

    Any failure or timeout yields None; lookups never raise.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = (base_url or settings.GEOLOCATION_URL).rstrip("/")
        self.timeout = timeout or settings.GEOLOCATION_TIMEOUT_SECONDS
        self.cache_seconds = cache_seconds or settings.GEOLOCATION_CACHE_SECONDS
        self._client = client
        self._clock = clock
        self._cache: Dict[str, Tuple[float, str]] = {}

    async def country_for(self, ip: Optional[str]) -> Optional[str]:
        if not ip or not _is_public(ip):
            return None

        cached = self._cache.get(ip)
        if cached and self._clock() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            if self._client is not None:
                response = await self._client.get(self._url(ip), timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self._url(ip))
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Country lookup failed for {ip}: {e}")
            return None

        if data.get("status") != "success" or not data.get("countryCode"):
            logger.warning(f"Country lookup failed for {ip}: {data.get('message', 'unknown error')}")
            return None

        country = data["countryCode"].upper()
        self._cache[ip] = (self._clock(), country)
        return country

    def _url(self, ip: str) -> str:
        return f"{self.base_url}/{ip}?fields=status,message,countryCode"


_locator: Optional[GeoLocator] = None


def get_geolocator() -> GeoLocator:
    global _locator
    if _locator is None:
        _locator = GeoLocator()
    return _locator
