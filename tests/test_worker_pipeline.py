from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from cityleague_import.consumer.pool import StageError
from cityleague_import.consumer.worker import LeagueType, ResultImporter, classify_league
from cityleague_import.db import Base, make_engine, make_session_factory
from cityleague_import.models import CityleagueResult, CityleagueSchedule
from cityleague_import.mq.client import MQError
from cityleague_import.repository import ResultRepository, ScheduleNotFoundError
from cityleague_import.schemas import EventResult, OfficialEvent
from cityleague_import.storage.deck_images import DeckImageError
from cityleague_import.upstream.players import PlayersAPIError

JST = timezone(timedelta(hours=9))


def _event(**overrides) -> OfficialEvent:
    fields = {
        "id": 501,
        "title": "City League Tokyo",
        "date": datetime(2025, 1, 12, 0, 0, tzinfo=JST),
        "league_title": "マスター",
        "shop_name": "Card Shop",
    }
    fields.update(overrides)
    return OfficialEvent(**fields)


class _StubRepository:
    def __init__(self, *, schedule_error: Exception | None = None, insert_error: Exception | None = None):
        self.rows: list[CityleagueResult] = []
        self._keys: set[tuple] = set()
        self._schedule_error = schedule_error
        self._insert_error = insert_error

    def find_schedule_for_date(self, when):
        if self._schedule_error is not None:
            raise self._schedule_error
        return SimpleNamespace(id="sched-1")

    def insert_result(self, result: CityleagueResult) -> bool:
        if self._insert_error is not None:
            raise self._insert_error
        key = (result.cityleague_schedule_id, result.official_event_id, result.player_id)
        if key in self._keys:
            return False
        self._keys.add(key)
        self.rows.append(result)
        return True


class _StubDeckImages:
    def __init__(self, error: Exception | None = None):
        self.calls: list[str] = []
        self._error = error

    def ensure_deck_image(self, deck_code: str) -> bool:
        self.calls.append(deck_code)
        if self._error is not None:
            raise self._error
        return True


class _StubQueue:
    def __init__(self, error: Exception | None = None):
        self.deleted: list[str] = []
        self._error = error

    def delete_message(self, message_id: str) -> None:
        if self._error is not None:
            raise self._error
        self.deleted.append(message_id)


def _results() -> list[EventResult]:
    return [
        EventResult(player_id="p1", name="Alice", rank=1, point=12, deck_id="ABC123"),
        EventResult(player_id="p2", name="Bob", rank=2, point=9, deck_id=""),
    ]


class ClassifyLeagueTests(unittest.TestCase):
    def test_known_titles_map_to_league_types(self) -> None:
        self.assertEqual(LeagueType.MASTER, classify_league("マスター"))
        self.assertEqual(4, classify_league("マスター"))
        self.assertEqual(3, classify_league("シニア"))
        self.assertEqual(2, classify_league("ジュニア"))
        self.assertEqual(1, classify_league("オープン"))

    def test_unknown_or_empty_titles_are_unknown(self) -> None:
        self.assertEqual(LeagueType.UNKNOWN, classify_league(""))
        self.assertEqual(0, classify_league("Masters"))
        self.assertEqual(0, classify_league(" マスター"))


class ResultImporterTests(unittest.TestCase):
    def _importer(self, *, results=None, fetch_error=None, repository=None, deck_images=None, queue=None):
        fetched: list[int] = []

        def fetch(event_id: int):
            fetched.append(event_id)
            if fetch_error is not None:
                raise fetch_error
            return _results() if results is None else results

        importer = ResultImporter(
            fetch_results=fetch,
            repository=repository or _StubRepository(),
            deck_images=deck_images or _StubDeckImages(),
            queue=queue or _StubQueue(),
        )
        return importer, fetched

    def test_process_persists_rows_uploads_decks_and_deletes_message(self) -> None:
        repository = _StubRepository()
        deck_images = _StubDeckImages()
        queue = _StubQueue()
        importer, fetched = self._importer(repository=repository, deck_images=deck_images, queue=queue)

        outcome = importer.process("msg-1", _event())

        self.assertEqual([501], fetched)
        self.assertEqual(["ABC123"], deck_images.calls)
        self.assertEqual(["msg-1"], queue.deleted)
        self.assertEqual(2, outcome.inserted)
        self.assertTrue(outcome.deleted)
        first = repository.rows[0]
        self.assertEqual("sched-1", first.cityleague_schedule_id)
        self.assertEqual(501, first.official_event_id)
        self.assertEqual(4, first.league_type)
        self.assertEqual("p1", first.player_id)
        self.assertEqual("Alice", first.player_name)
        self.assertEqual(12, first.point)
        self.assertEqual("ABC123", first.deck_code)
        self.assertEqual(["p1", "p2"], [row.player_id for row in repository.rows])

    def test_zero_results_short_circuits_without_writes_or_delete(self) -> None:
        repository = _StubRepository()
        deck_images = _StubDeckImages()
        queue = _StubQueue()
        importer, _ = self._importer(results=[], repository=repository, deck_images=deck_images, queue=queue)

        outcome = importer.process("msg-1", _event())

        self.assertEqual([], repository.rows)
        self.assertEqual([], deck_images.calls)
        self.assertEqual([], queue.deleted)
        self.assertFalse(outcome.deleted)

    def test_duplicate_rows_are_skipped_and_message_still_deleted(self) -> None:
        repository = _StubRepository()
        queue = _StubQueue()
        importer, _ = self._importer(repository=repository, queue=queue)

        importer.process("msg-1", _event())
        outcome = importer.process("msg-1-redelivered", _event())

        self.assertEqual(2, len(repository.rows))
        self.assertEqual(0, outcome.inserted)
        self.assertEqual(2, outcome.skipped)
        self.assertEqual(["msg-1", "msg-1-redelivered"], queue.deleted)

    def test_results_lookup_error_aborts(self) -> None:
        queue = _StubQueue()
        importer, _ = self._importer(fetch_error=PlayersAPIError("boom"), queue=queue)

        with self.assertRaises(StageError) as ctx:
            importer.process("msg-1", _event())

        self.assertIn("event ID 501", ctx.exception.message)
        self.assertEqual([], queue.deleted)

    def test_missing_schedule_aborts_before_any_write(self) -> None:
        repository = _StubRepository(schedule_error=ScheduleNotFoundError("none"))
        deck_images = _StubDeckImages()
        queue = _StubQueue()
        importer, _ = self._importer(repository=repository, deck_images=deck_images, queue=queue)

        with self.assertRaises(StageError) as ctx:
            importer.process("msg-1", _event())

        self.assertIn("cityleague schedule", ctx.exception.message)
        self.assertIsInstance(ctx.exception.__cause__, ScheduleNotFoundError)
        self.assertEqual([], deck_images.calls)
        self.assertEqual([], queue.deleted)

    def test_deck_image_error_aborts_before_insert(self) -> None:
        repository = _StubRepository()
        queue = _StubQueue()
        importer, _ = self._importer(
            repository=repository,
            deck_images=_StubDeckImages(error=DeckImageError("s3 down")),
            queue=queue,
        )

        with self.assertRaises(StageError) as ctx:
            importer.process("msg-1", _event())

        self.assertIn("ABC123", ctx.exception.message)
        self.assertEqual([], repository.rows)
        self.assertEqual([], queue.deleted)

    def test_persistence_error_aborts(self) -> None:
        repository = _StubRepository(insert_error=OperationalError("INSERT", {}, Exception("gone")))
        queue = _StubQueue()
        importer, _ = self._importer(repository=repository, queue=queue)

        with self.assertRaises(StageError) as ctx:
            importer.process("msg-1", _event())

        self.assertIn("player ID p1", ctx.exception.message)
        self.assertEqual([], queue.deleted)

    def test_delete_failure_is_reported_and_rows_remain(self) -> None:
        repository = _StubRepository()
        importer, _ = self._importer(repository=repository, queue=_StubQueue(error=MQError("fatal")))

        with self.assertRaises(StageError) as ctx:
            importer.process("msg-1", _event())

        self.assertIn("delete message msg-1", ctx.exception.message)
        self.assertEqual(2, len(repository.rows))

    def test_unknown_league_title_is_persisted_as_zero(self) -> None:
        repository = _StubRepository()
        importer, _ = self._importer(repository=repository)

        importer.process("msg-1", _event(league_title="Unknown League"))

        self.assertEqual({0}, {row.league_type for row in repository.rows})


class ResultImporterWithDatabaseTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite://")
        Base.metadata.create_all(bind=self.engine)
        self.session_factory = make_session_factory(self.engine)
        with self.session_factory() as db:
            db.add(
                CityleagueSchedule(
                    id="2025-01",
                    title="January",
                    from_date=date(2025, 1, 1),
                    to_date=date(2025, 1, 31),
                )
            )
            db.commit()

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_redelivered_event_writes_each_player_once(self) -> None:
        queue = _StubQueue()
        importer = ResultImporter(
            fetch_results=lambda _event_id: _results(),
            repository=ResultRepository(self.session_factory),
            deck_images=_StubDeckImages(),
            queue=queue,
        )

        importer.process("msg-1", _event())
        outcome = importer.process("msg-2", _event())

        with self.session_factory() as db:
            rows = db.query(CityleagueResult).order_by(CityleagueResult.rank.asc()).all()
        self.assertEqual(["p1", "p2"], [row.player_id for row in rows])
        self.assertEqual("2025-01", rows[0].cityleague_schedule_id)
        self.assertEqual(2, outcome.skipped)
        self.assertEqual(["msg-1", "msg-2"], queue.deleted)


if __name__ == "__main__":
    unittest.main()
