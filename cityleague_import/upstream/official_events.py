"""Fetch the city league official events held on one day."""

from __future__ import annotations

import logging
from datetime import date

import requests
from pydantic import ValidationError

from cityleague_import.schemas import OfficialEvent, OfficialEventsResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 12
CITYLEAGUE_TYPE_ID = 2
ALL_LEAGUES = 0


class OfficialEventsAPIError(RuntimeError):
    pass


def build_official_events_params(day: date) -> dict[str, str | int]:
    iso_day = day.isoformat()
    return {
        "type_id": CITYLEAGUE_TYPE_ID,
        "league_type": ALL_LEAGUES,
        "start_date": iso_day,
        "end_date": iso_day,
    }


def fetch_official_events(
    session: requests.Session,
    day: date,
    *,
    base_url: str = "https://beta.vsrecorder.mobi/api/v1beta",
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[OfficialEvent]:
    url = f"{base_url.rstrip('/')}/official_events"
    try:
        response = session.get(
            url,
            params=build_official_events_params(day),
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise OfficialEventsAPIError(f"official events request for {day} failed: {exc}") from exc

    if response.status_code != 200:
        raise OfficialEventsAPIError(
            f"official events request for {day} returned status={response.status_code}"
        )

    try:
        payload = OfficialEventsResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise OfficialEventsAPIError(f"official events for {day} were not valid: {exc}") from exc

    logger.info("Fetched %d official events for %s", len(payload.official_events), day)
    return payload.official_events
