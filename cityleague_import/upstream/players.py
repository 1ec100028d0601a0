"""Lookup of per-player results for one official event."""

from __future__ import annotations

import logging

import requests
from pydantic import ValidationError

from cityleague_import.schemas import EventResult, EventResultDetailSearch

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 12
RESULTS_PATH = "/event_result_detail_search"


class PlayersAPIError(RuntimeError):
    pass


def fetch_event_results(
    session: requests.Session,
    event_id: int,
    *,
    base_url: str = "https://players.pokemon-card.com",
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[EventResult]:
    """Return the results of an event in the order the API lists them.

    An unknown event (HTTP 404) yields an empty list instead of an error.
    """

    url = f"{base_url.rstrip('/')}{RESULTS_PATH}"
    try:
        response = session.get(
            url,
            params={"event_holding_id": event_id},
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise PlayersAPIError(f"results request for event {event_id} failed: {exc}") from exc

    if response.status_code == 404:
        logger.info("Results for event %d not found upstream", event_id)
        return []
    if response.status_code != 200:
        raise PlayersAPIError(
            f"results request for event {event_id} returned status={response.status_code}"
        )

    try:
        payload = EventResultDetailSearch.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise PlayersAPIError(f"results for event {event_id} were not valid: {exc}") from exc
    return payload.results or []
