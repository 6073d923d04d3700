"""Storage gateway tests against a real in-memory SQLite database."""

import time
from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from src.catalog.core.errors import (
    BookNotFoundError,
    DuplicateTitleError,
    NoRowsAffectedError,
    StorageError,
    StorageTimeoutError,
)
from src.catalog.core.services import DbManageService, DbSessionService, Deadline
from src.catalog.entities.service.book import Book, BookRepository
from src.catalog.entities.service.book import repository as repository_module
from src.catalog.runtime.config.config_data import DatabaseConfig

D1 = date(2020, 1, 1)
D2 = date(2021, 6, 15)


class TestInsertAndRead:
    def test_insert_assigns_increasing_ids(self, book_repository: BookRepository):
        first = book_repository.insert("A", "X", D1)
        second = book_repository.insert("B", "X", D1)
        third = book_repository.insert("C", "X", D1)

        assert first < second < third

    def test_deleted_ids_are_never_reused(self, book_repository: BookRepository):
        first = book_repository.insert("A", "X", D1)
        last = book_repository.insert("B", "X", D1)
        book_repository.delete(last)

        replacement = book_repository.insert("C", "X", D1)

        assert replacement > last > first

    def test_find_by_id_round_trip(self, book_repository: BookRepository):
        book_id = book_repository.insert("Dune", "Herbert", date(1965, 8, 1))

        assert book_repository.find_by_id(book_id) == Book(
            id=book_id, title="Dune", author="Herbert", published_at=date(1965, 8, 1)
        )

    def test_find_by_id_missing_raises_not_found(self, book_repository: BookRepository):
        with pytest.raises(BookNotFoundError) as exc_info:
            book_repository.find_by_id(404)

        assert exc_info.value.book_id == 404

    def test_find_all_empty_store(self, book_repository: BookRepository):
        assert book_repository.find_all() == []

    def test_find_all_returns_every_row(self, book_repository: BookRepository):
        book_repository.insert("A", "X", D1)
        book_repository.insert("B", "Y", D2)

        books = book_repository.find_all()

        assert [(b.title, b.author, b.published_at) for b in books] == [
            ("A", "X", D1),
            ("B", "Y", D2),
        ]

    def test_find_all_fails_whole_call_on_bad_row(self, book_repository: BookRepository):
        book_repository.insert("A", "X", D1)
        book_repository.insert("B", "Y", D2)

        real_to_entity = repository_module._to_entity
        calls = []

        def flaky(row):
            calls.append(row.id)
            if len(calls) == 2:
                raise ValueError("corrupt row")
            return real_to_entity(row)

        with patch.object(repository_module, "_to_entity", side_effect=flaky):
            with pytest.raises(StorageError):
                book_repository.find_all()


class TestExistenceChecks:
    def test_title_exists_exact_match(self, book_repository: BookRepository):
        book_repository.insert("Dune", "Herbert", D1)

        assert book_repository.title_exists("Dune") is True
        assert book_repository.title_exists("Dune Messiah") is False

    def test_title_exists_is_case_sensitive(self, book_repository: BookRepository):
        book_repository.insert("Dune", "Herbert", D1)

        assert book_repository.title_exists("dune") is False
        assert book_repository.title_exists("DUNE") is False

    def test_title_exists_excluding_owner(self, book_repository: BookRepository):
        owner = book_repository.insert("Dune", "Herbert", D1)
        other = book_repository.insert("Emma", "Austen", D1)

        assert book_repository.title_exists("Dune", exclude_id=owner) is False
        assert book_repository.title_exists("Dune", exclude_id=other) is True

    def test_id_exists(self, book_repository: BookRepository):
        book_id = book_repository.insert("Dune", "Herbert", D1)

        assert book_repository.id_exists(book_id) is True
        assert book_repository.id_exists(book_id + 1) is False


class TestMutations:
    def test_update_overwrites_fields(self, book_repository: BookRepository):
        book_id = book_repository.insert("A", "X", D1)

        assert book_repository.update(book_id, "B", "Y", D2) == book_id
        assert book_repository.find_by_id(book_id) == Book(
            id=book_id, title="B", author="Y", published_at=D2
        )

    def test_update_missing_id_is_a_storage_error(self, book_repository: BookRepository):
        with pytest.raises(NoRowsAffectedError) as exc_info:
            book_repository.update(404, "A", "X", D1)

        assert isinstance(exc_info.value, StorageError)
        assert not isinstance(exc_info.value, BookNotFoundError)

    def test_delete_removes_row(self, book_repository: BookRepository):
        book_id = book_repository.insert("A", "X", D1)

        book_repository.delete(book_id)

        assert book_repository.id_exists(book_id) is False

    def test_delete_missing_id_is_a_storage_error(self, book_repository: BookRepository):
        with pytest.raises(NoRowsAffectedError):
            book_repository.delete(404)


class TestUniqueConstraint:
    """The table itself rejects duplicates, without any pre-check."""

    def test_duplicate_insert_rejected_by_storage(self, book_repository: BookRepository):
        book_repository.insert("Dune", "Herbert", D1)

        with pytest.raises(DuplicateTitleError) as exc_info:
            book_repository.insert("Dune", "Someone Else", D2)

        assert exc_info.value.title == "Dune"
        assert len(book_repository.find_all()) == 1

    def test_update_onto_taken_title_rejected_by_storage(
        self, book_repository: BookRepository
    ):
        book_repository.insert("Dune", "Herbert", D1)
        other = book_repository.insert("Emma", "Austen", D1)

        with pytest.raises(DuplicateTitleError):
            book_repository.update(other, "Dune", "Austen", D1)

        assert book_repository.find_by_id(other).title == "Emma"

    def test_failed_insert_does_not_poison_later_calls(
        self, book_repository: BookRepository
    ):
        book_repository.insert("Dune", "Herbert", D1)
        with pytest.raises(DuplicateTitleError):
            book_repository.insert("Dune", "Herbert", D1)

        assert book_repository.insert("Emma", "Austen", D1) > 0


class TestDeadlines:
    def test_expired_caller_deadline_fails_fast(self, book_repository: BookRepository):
        with pytest.raises(StorageTimeoutError):
            book_repository.insert("Dune", "Herbert", D1, ctx=Deadline.after(0))

        assert book_repository.find_all() == []

    def test_cancelled_caller_fails_every_operation(
        self, book_repository: BookRepository
    ):
        ctx = Deadline()
        ctx.cancel()

        with pytest.raises(StorageTimeoutError):
            book_repository.find_all(ctx=ctx)
        with pytest.raises(StorageTimeoutError):
            book_repository.title_exists("Dune", ctx=ctx)
        with pytest.raises(StorageTimeoutError):
            book_repository.delete(1, ctx=ctx)

    def test_live_caller_deadline_is_honoured(self, book_repository: BookRepository):
        ctx = Deadline.after(30)

        book_id = book_repository.insert("Dune", "Herbert", D1, ctx=ctx)

        assert book_repository.find_by_id(book_id, ctx=ctx).title == "Dune"

    def test_runaway_statement_is_interrupted(self, database_service: DbSessionService):
        runaway = text(
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
            "SELECT count(*) FROM c"
        )

        with pytest.raises(OperationalError):
            with database_service.session_scope(Deadline.after(0.05)) as session:
                session.connection().execute(runaway)

        # The interrupt handler is removed with the session
        repository = BookRepository(database_service)
        assert repository.insert("Dune", "Herbert", D1) > 0

    def test_interrupted_operation_maps_to_timeout(self, database_service: DbSessionService):
        repository = BookRepository(database_service)
        runaway = text(
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
            "SELECT count(*) FROM c"
        )

        with pytest.raises(StorageTimeoutError):
            with repository._operation("runaway", Deadline.after(0.05)) as session:
                session.connection().execute(runaway)


class TestStorageFailures:
    def test_missing_table_is_a_generic_storage_error(self):
        database_service = DbSessionService(
            DatabaseConfig(url="sqlite://", environment_mode="test")
        )
        repository = BookRepository(database_service)
        try:
            with pytest.raises(StorageError) as exc_info:
                repository.find_all()
        finally:
            database_service.dispose()

        assert not isinstance(exc_info.value, StorageTimeoutError)
        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestCorruptRows:
    """Values the driver cannot decode fail the call as a storage error."""

    @pytest.fixture
    def corrupt_row(self, database_service: DbSessionService, book_repository: BookRepository):
        book_repository.insert("A", "X", D1)
        with database_service.session_scope() as session:
            session.connection().execute(
                text(
                    "INSERT INTO books (title_name, author_name, published_at) "
                    "VALUES ('B', 'Y', 'garbage')"
                )
            )
        with database_service.session_scope() as session:
            return session.connection().execute(
                text("SELECT id FROM books WHERE title_name = 'B'")
            ).scalar_one()

    def test_find_all_fails_on_undecodable_date(
        self, book_repository: BookRepository, corrupt_row: int
    ):
        with pytest.raises(StorageError) as exc_info:
            book_repository.find_all()

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_find_by_id_fails_on_undecodable_date(
        self, book_repository: BookRepository, corrupt_row: int
    ):
        with pytest.raises(StorageError):
            book_repository.find_by_id(corrupt_row)

    def test_healthy_rows_still_readable(
        self, book_repository: BookRepository, corrupt_row: int
    ):
        assert book_repository.title_exists("A") is True


class TestPoolExhaustion:
    @pytest.fixture
    def single_connection_service(self, tmp_path):
        config = DatabaseConfig(
            url=f"sqlite:///{tmp_path / 'pool.db'}",
            environment_mode="test",
            pool_size=1,
            max_overflow=0,
            pool_timeout=4,
            query_timeout_seconds=0.2,
        )
        database_service = DbSessionService(config)
        DbManageService(database_service).create_all()
        try:
            yield database_service
        finally:
            database_service.dispose()

    def test_checkout_wait_is_capped_by_query_timeout(
        self, single_connection_service: DbSessionService
    ):
        assert single_connection_service.engine.pool.timeout() == pytest.approx(0.2)

    def test_waiting_for_a_connection_times_out(
        self, single_connection_service: DbSessionService
    ):
        repository = BookRepository(single_connection_service)
        held = single_connection_service.engine.connect()
        try:
            start = time.perf_counter()
            with pytest.raises(StorageTimeoutError):
                repository.title_exists("Dune")
            elapsed = time.perf_counter() - start
        finally:
            held.close()

        assert elapsed < 1.0
        assert repository.title_exists("Dune") is False
