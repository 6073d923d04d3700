"""Application startup and shutdown wiring against a real database file."""

from fastapi.testclient import TestClient

from src.catalog.api.http.app import create_app, shutdown, startup
from src.catalog.runtime.config.config_data import ConfigData, DatabaseConfig
from src.catalog.runtime.context import with_context


def _file_config(tmp_path, create_tables: bool = True) -> ConfigData:
    return ConfigData(
        database=DatabaseConfig(
            url=f"sqlite:///{tmp_path / 'catalog.db'}",
            environment_mode="test",
            create_tables=create_tables,
        )
    )


def test_startup_provisions_and_serves(tmp_path):
    with with_context(_file_config(tmp_path)):
        app = create_app()
        startup(app)
        try:
            client = TestClient(app)
            created = client.post(
                "/api/v1/book",
                json={"title_name": "Emma", "author_name": "Austen", "published_at": "1815-12-23"},
            )
            listed = client.get("/api/v1/books")
        finally:
            shutdown(app)

    assert created.status_code == 201
    assert [b["title_name"] for b in listed.json()["books"]] == ["Emma"]
    assert (tmp_path / "catalog.db").exists()


def test_data_survives_restart(tmp_path):
    with with_context(_file_config(tmp_path)):
        first = create_app()
        startup(first)
        try:
            TestClient(first).post(
                "/api/v1/book",
                json={"title_name": "Emma", "author_name": "Austen", "published_at": "1815-12-23"},
            )
        finally:
            shutdown(first)

        second = create_app()
        startup(second)
        try:
            books = TestClient(second).get("/api/v1/books").json()["books"]
        finally:
            shutdown(second)

    assert [b["author_name"] for b in books] == ["Austen"]


def test_startup_without_provisioning_reports_storage_errors(tmp_path):
    with with_context(_file_config(tmp_path, create_tables=False)):
        app = create_app()
        startup(app)
        try:
            response = TestClient(app).get("/api/v1/books")
        finally:
            shutdown(app)

    assert response.status_code == 500
    assert response.json()["error"] == "storage_error"
