"""Transit/ETA override client.

Optional: any failure falls back to the straight-line walking estimate.
"""
import logging
from typing import Optional, Sequence

import httpx

from vibefield.domain.common.geo import Position
from vibefield.domain.convergence.models import VenueCandidate
from vibefield.domain.convergence.venues import EtaProvider

logger = logging.getLogger(__name__)


class HttpEtaProvider(EtaProvider):
    def __init__(self, base_url: str, timeout: float = 2.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def etas(
        self, self_position: Position, peer_position: Position, venues: Sequence[VenueCandidate]
    ) -> dict[str, tuple[float, float]]:
        """POST {base_url}/etas; response {"etas": {venue_id: {"self": s, "peer": s}}}."""
        if not venues:
            return {}
        url = f"{self.base_url}/etas"
        body = {
            "self": self_position.to_dict(),
            "peer": peer_position.to_dict(),
            "venues": [{"id": v.id, **v.position.to_dict()} for v in venues],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=body)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[ETA] Override unavailable at {url}, using walking estimate: {e}")
            return {}

        if not isinstance(payload, dict):
            logger.warning(f"[ETA] Unexpected payload from {url}, using walking estimate")
            return {}
        result: dict[str, tuple[float, float]] = {}
        for venue_id, entry in (payload.get("etas") or {}).items():
            try:
                result[str(venue_id)] = (float(entry["self"]), float(entry["peer"]))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"[ETA] Ignoring malformed entry for {venue_id}")
        return result
