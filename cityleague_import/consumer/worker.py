from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from cityleague_import.consumer.pool import StageError
from cityleague_import.models import CityleagueResult
from cityleague_import.mq.client import MQError
from cityleague_import.repository import ResultRepository, ScheduleNotFoundError
from cityleague_import.schemas import EventResult, OfficialEvent
from cityleague_import.storage.deck_images import DeckImageError
from cityleague_import.upstream.players import PlayersAPIError

logger = logging.getLogger(__name__)


class LeagueType(IntEnum):
    UNKNOWN = 0
    OPEN = 1
    JUNIOR = 2
    SENIOR = 3
    MASTER = 4


LEAGUE_TITLES: dict[str, LeagueType] = {
    "オープン": LeagueType.OPEN,
    "ジュニア": LeagueType.JUNIOR,
    "シニア": LeagueType.SENIOR,
    "マスター": LeagueType.MASTER,
}


def classify_league(league_title: str) -> LeagueType:
    return LEAGUE_TITLES.get(league_title, LeagueType.UNKNOWN)


class MessageAcknowledger(Protocol):
    def delete_message(self, message_id: str) -> None: ...


class DeckImageEnsurer(Protocol):
    def ensure_deck_image(self, deck_code: str) -> bool: ...


@dataclass
class ImportOutcome:
    inserted: int = 0
    skipped: int = 0
    images_uploaded: int = 0
    deleted: bool = False


def build_result(
    schedule_id: str,
    event: OfficialEvent,
    league_type: LeagueType,
    result: EventResult,
) -> CityleagueResult:
    return CityleagueResult(
        cityleague_schedule_id=schedule_id,
        official_event_id=event.id,
        league_type=int(league_type),
        event_date=event.date,
        player_id=result.player_id,
        player_name=result.name,
        rank=result.rank,
        point=result.point,
        deck_code=result.deck_id,
    )


class ResultImporter:
    """Turns one official event into result rows, then acknowledges its message.

    Stages run in order and any failure raises ``StageError``; the message is
    then left on the queue and comes back after its visibility timeout.
    """

    def __init__(
        self,
        *,
        fetch_results: Callable[[int], list[EventResult]],
        repository: ResultRepository,
        deck_images: DeckImageEnsurer,
        queue: MessageAcknowledger,
    ) -> None:
        self._fetch_results = fetch_results
        self._repository = repository
        self._deck_images = deck_images
        self._queue = queue

    def process(self, message_id: str, event: OfficialEvent) -> ImportOutcome:
        outcome = ImportOutcome()
        league_type = classify_league(event.league_title)

        try:
            results = self._fetch_results(event.id)
        except PlayersAPIError as exc:
            raise StageError(f"Failed to get event results for event ID {event.id}") from exc

        if not results:
            # Left undeleted: the message is redelivered after its visibility timeout.
            logger.info("No results found for event ID %d, skipping", event.id)
            return outcome

        try:
            schedule = self._repository.find_schedule_for_date(event.date)
        except (ScheduleNotFoundError, SQLAlchemyError) as exc:
            raise StageError(
                f"Failed to find cityleague schedule for date {event.date.isoformat()}"
            ) from exc

        logger.info(
            "Importing %d result(s) event=%d schedule=%s league=%s",
            len(results),
            event.id,
            schedule.id,
            league_type.name,
        )

        for result in results:
            if result.deck_id:
                try:
                    if self._deck_images.ensure_deck_image(result.deck_id):
                        outcome.images_uploaded += 1
                except DeckImageError as exc:
                    raise StageError(
                        f"Failed to upload deck image for deck ID {result.deck_id}"
                    ) from exc

            row = build_result(schedule.id, event, league_type, result)
            logger.debug("CityleagueResult: %r", row)
            try:
                written = self._repository.insert_result(row)
            except SQLAlchemyError as exc:
                raise StageError(
                    f"Failed to insert cityleague result for player ID {result.player_id}"
                ) from exc
            if written:
                outcome.inserted += 1
            else:
                outcome.skipped += 1

        try:
            self._queue.delete_message(message_id)
        except MQError as exc:
            raise StageError(f"Failed to delete message {message_id} from MQ") from exc
        outcome.deleted = True

        logger.info(
            "Event %d done: inserted=%d skipped=%d images_uploaded=%d",
            event.id,
            outcome.inserted,
            outcome.skipped,
            outcome.images_uploaded,
        )
        return outcome
