"""
Client for the vote API that feeds the bubble chart.

Endpoints:
- GET /initial-data          -> {latestVote: {..., voteEvents: [...]}, votes: [...], policies: [...]}
- GET /vote-events/<vote_id> -> [vote event joined with its person, ...]
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from d3_svg_bubbles.config import DEFAULT_API_BASE_URL

logger = logging.getLogger(__name__)

DEFAULT_COLOUR = "#999999"


class VotesClient:
    """Thin synchronous wrapper over the two API routes.

    Pass ``client`` to reuse a configured ``httpx.Client`` (its base_url is
    left alone); otherwise one is created for ``base_url`` and closed by
    :meth:`close`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self._owns_client = client is None
        self.http_client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def _get_json(self, path: str) -> Any:
        logger.debug("GET %s", path)
        try:
            response = self.http_client.get(path, headers={"Accept": "application/json"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Vote API request {path} failed: {e}")
            raise
        return response.json()

    def initial_data(self) -> Dict[str, Any]:
        """Latest vote with its events, every vote, and every policy."""
        return self._get_json("/initial-data")

    def vote_events(self, vote_id) -> List[Dict[str, Any]]:
        """Events (one per person) recorded for ``vote_id``."""
        return self._get_json(f"/vote-events/{vote_id}")


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def vote_event_records(
    events: Iterable[Dict[str, Any]],
    colour_for: Optional[Callable[[Dict[str, Any]], Optional[str]]] = None,
) -> List[Dict[str, Any]]:
    """
    Turn vote event rows into bubble chart records.

    Each record gets ``personId``, ``option``, ``colour`` and ``borderColour``;
    every other field of the row is carried along untouched.

    Args:
        events: Rows as returned by ``/vote-events/<id>``.
        colour_for: Optional callable picking a fill for a row (e.g. by party).
            Falls back to the row's own colour, then DEFAULT_COLOUR.
    """
    records = []
    for row in events:
        record = dict(row)
        record["personId"] = _first(row, "personId", "person_id")
        record["option"] = _first(row, "option")
        colour = colour_for(row) if colour_for else None
        record["colour"] = colour or _first(row, "colour", "color") or DEFAULT_COLOUR
        record["borderColour"] = _first(row, "borderColour", "border_colour")
        records.append(record)
    return records
