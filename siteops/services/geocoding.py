"""
Reverse geocoding with an ordered chain of providers.

Each provider turns coordinates into "locality, city, state, country" text. The chain
stops at the first provider that returns usable text; when every provider fails the
raw coordinates are returned, so resolve_address never raises.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AreaRule:
    """Prefer a named sub-area over generic locality fields inside one metro area."""
    city_aliases: Tuple[str, ...]
    sub_areas: Tuple[str, ...]

    def applies_to(self, values: Iterable[str]) -> bool:
        aliases = {a.lower() for a in self.city_aliases}
        return any(v and v.strip().lower() in aliases for v in values)

    def find_sub_area(self, texts: Iterable[str]) -> Optional[str]:
        haystack = " | ".join(t for t in texts if t).lower()
        for area in self.sub_areas:
            if area.lower() in haystack:
                return area
        return None


DEFAULT_AREA_RULES: List[AreaRule] = [
    AreaRule(
        city_aliases=("Bengaluru", "Bangalore", "Bengaluru Urban", "Bangalore Urban"),
        sub_areas=(
            "Koramangala",
            "Indiranagar",
            "Whitefield",
            "Jayanagar",
            "HSR Layout",
            "BTM Layout",
            "JP Nagar",
            "Electronic City",
            "Marathahalli",
            "Malleshwaram",
            "Rajajinagar",
            "Hebbal",
            "Yelahanka",
            "Banashankari",
            "Basavanagudi",
            "Bellandur",
            "Sarjapur",
            "Hennur",
        ),
    ),
]


def compose_address(
    locality: Optional[str],
    city: Optional[str],
    state: Optional[str],
    country: Optional[str],
    candidates: Iterable[str] = (),
    area_rules: Sequence[AreaRule] = (),
) -> Optional[str]:
    """Join the most specific available levels, skipping empty and repeated ones."""
    candidates = list(candidates)
    for rule in area_rules:
        if rule.applies_to([city, locality, *candidates]):
            sub_area = rule.find_sub_area([locality, *candidates])
            if sub_area:
                locality = sub_area
            break

    parts: List[str] = []
    seen = set()
    for value in (locality, city, state, country):
        text = (value or "").strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        parts.append(text)
    return ", ".join(parts) or None


def _first(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


class GeocodingProvider:
    name = "provider"

    def __init__(self, area_rules: Optional[Sequence[AreaRule]] = None):
        self.area_rules = DEFAULT_AREA_RULES if area_rules is None else list(area_rules)

    async def lookup(self, client: httpx.AsyncClient, lat: float, lng: float) -> Optional[str]:
        raise NotImplementedError


class NominatimProvider(GeocodingProvider):
    """Detailed reverse geocoder; parses OSM address components."""
    name = "nominatim"

    def __init__(self, url: Optional[str] = None, area_rules: Optional[Sequence[AreaRule]] = None):
        super().__init__(area_rules)
        self.url = url or settings.nominatim_url

    async def lookup(self, client: httpx.AsyncClient, lat: float, lng: float) -> Optional[str]:
        resp = await client.get(
            self.url,
            params={"lat": lat, "lon": lng, "format": "jsonv2", "addressdetails": 1, "zoom": 18},
        )
        resp.raise_for_status()
        data = resp.json()
        address = data.get("address") or {}
        return compose_address(
            locality=_first(address, "neighbourhood", "suburb", "quarter", "hamlet", "village"),
            city=_first(address, "city", "town", "city_district", "county", "state_district"),
            state=_first(address, "state"),
            country=_first(address, "country"),
            candidates=[str(v) for v in address.values()] + [data.get("display_name") or ""],
            area_rules=self.area_rules,
        )


class BigDataCloudProvider(GeocodingProvider):
    """Locality-level reverse geocoder."""
    name = "bigdatacloud"

    def __init__(self, url: Optional[str] = None, area_rules: Optional[Sequence[AreaRule]] = None):
        super().__init__(area_rules)
        self.url = url or settings.bigdatacloud_url

    async def lookup(self, client: httpx.AsyncClient, lat: float, lng: float) -> Optional[str]:
        resp = await client.get(
            self.url, params={"latitude": lat, "longitude": lng, "localityLanguage": "en"}
        )
        resp.raise_for_status()
        data = resp.json()
        info = data.get("localityInfo") or {}
        names = [
            entry.get("name") or ""
            for group in ("administrative", "informative")
            for entry in info.get(group) or []
        ]
        return compose_address(
            locality=_first(data, "locality"),
            city=_first(data, "city"),
            state=_first(data, "principalSubdivision"),
            country=_first(data, "countryName"),
            candidates=names,
            area_rules=self.area_rules,
        )


class PhotonProvider(GeocodingProvider):
    """Generic OSM-backed reverse geocoder used as the last resort."""
    name = "photon"

    def __init__(self, url: Optional[str] = None, area_rules: Optional[Sequence[AreaRule]] = None):
        super().__init__(area_rules)
        self.url = url or settings.photon_url

    async def lookup(self, client: httpx.AsyncClient, lat: float, lng: float) -> Optional[str]:
        resp = await client.get(self.url, params={"lat": lat, "lon": lng})
        resp.raise_for_status()
        features = resp.json().get("features") or []
        if not features:
            return None
        props = features[0].get("properties") or {}
        return compose_address(
            locality=_first(props, "district", "locality", "name"),
            city=_first(props, "city", "county"),
            state=_first(props, "state"),
            country=_first(props, "country"),
            candidates=[str(v) for v in props.values() if isinstance(v, str)],
            area_rules=self.area_rules,
        )


def default_providers(area_rules: Optional[Sequence[AreaRule]] = None) -> List[GeocodingProvider]:
    """Priority order: detailed, locality, generic."""
    return [
        NominatimProvider(area_rules=area_rules),
        BigDataCloudProvider(area_rules=area_rules),
        PhotonProvider(area_rules=area_rules),
    ]


def coordinates_text(lat: float, lng: float) -> str:
    return f"{lat:.6f}, {lng:.6f}"


class GeocodingService:
    def __init__(
        self,
        providers: Optional[Sequence[GeocodingProvider]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
    ):
        self.providers = list(providers) if providers is not None else default_providers()
        self._client = client
        self._timeout_s = timeout_s if timeout_s is not None else settings.geocoder_timeout_s

    async def resolve_address(self, lat: float, lng: float) -> str:
        """Address text for the coordinates; falls back to "lat, lng" with 6 decimals."""
        if self._client is not None:
            return await self._run_chain(self._client, lat, lng)
        async with httpx.AsyncClient(
            timeout=self._timeout_s, headers={"User-Agent": settings.geocoder_user_agent}
        ) as client:
            return await self._run_chain(client, lat, lng)

    async def _run_chain(self, client: httpx.AsyncClient, lat: float, lng: float) -> str:
        for provider in self.providers:
            try:
                text = await provider.lookup(client, lat, lng)
            except Exception as exc:
                logger.warning("geocoding_provider_failed", provider=provider.name, error=str(exc))
                continue
            if text and text.strip():
                return text.strip()
            logger.info("geocoding_provider_empty", provider=provider.name)

        logger.info("geocoding_exhausted", lat=lat, lng=lng)
        return coordinates_text(lat, lng)
