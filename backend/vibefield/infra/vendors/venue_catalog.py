"""Venue catalog HTTP client with a short read-through cache."""
import logging
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from vibefield.domain.common.cache import TimeBoxedCache
from vibefield.domain.common.errors import InvalidPositionError, StorageUnavailableError
from vibefield.domain.common.geo import BBox, Position
from vibefield.domain.convergence.models import VenueCandidate
from vibefield.domain.convergence.venues import VenueCatalog

logger = logging.getLogger(__name__)

# Cache keys are rounded to ~11 m so nearby requests share entries
_KEY_DECIMALS = 4


def _parse_row(row: dict) -> Optional[VenueCandidate]:
    """Validate one catalog row; rows with missing ids or bad coordinates are skipped."""
    try:
        position = Position.validated(row.get("lat"), row.get("lng"))
        return VenueCandidate(
            id=str(row["id"]),
            position=position,
            category=row.get("category") or "general",
            open_now=row.get("open_now"),
            crowd=row.get("crowd"),
            name=row.get("name"),
        )
    except (KeyError, InvalidPositionError, PydanticValidationError) as e:
        logger.warning(f"[VENUES] Skipping malformed catalog row {row.get('id')!r}: {e}")
        return None


class HttpVenueCatalog(VenueCatalog):
    """GET {base_url}/venues?min_lat=&min_lng=&max_lat=&max_lng= returning a list of venue rows."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 3.0,
        cache: Optional[TimeBoxedCache[tuple, list[VenueCandidate]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache
        self._transport = transport

    async def venues_in_bbox(self, bbox: BBox) -> list[VenueCandidate]:
        key = tuple(round(v, _KEY_DECIMALS) for v in (bbox.min_lat, bbox.min_lng, bbox.max_lat, bbox.max_lng))
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        url = f"{self.base_url}/venues"
        params = {"min_lat": key[0], "min_lng": key[1], "max_lat": key[2], "max_lng": key[3]}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.error(f"[VENUES] Catalog unreachable at {url}: {e}")
            raise StorageUnavailableError("venue_catalog.venues_in_bbox", cause=e) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"[VENUES] Catalog returned {e.response.status_code} for {url}")
            raise StorageUnavailableError("venue_catalog.venues_in_bbox", cause=e) from e
        except ValueError as e:
            logger.error(f"[VENUES] Catalog returned a non-JSON body for {url}: {e}")
            raise StorageUnavailableError("venue_catalog.venues_in_bbox", cause=e) from e

        rows = (payload.get("venues") or []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            logger.error(f"[VENUES] Unexpected catalog payload from {url}: {type(rows).__name__}")
            raise StorageUnavailableError("venue_catalog.venues_in_bbox")
        venues = [v for v in (_parse_row(row) for row in rows if isinstance(row, dict)) if v is not None]
        logger.info(f"[VENUES] {len(venues)} candidates for bbox {key}")
        if self.cache is not None:
            self.cache.set(key, venues)
        return venues
