import json
import logging
from typing import Any

import pytest
from fastapi.testclient import TestClient
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from conftest import FixedClock, RecordingNotifier
from storyvault.application.results import (
    CREATION_FAILED_MESSAGE,
    DELETE_FAILED_MESSAGE,
    EDIT_FAILED_MESSAGE,
)
from storyvault.dependencies import get_clock, get_notification_gateway
from storyvault.infrastructure.database.database import get_session
from storyvault.infrastructure.database.models import Author as AuthorModel
from storyvault.infrastructure.database.repositories import PostRepository
from storyvault.main import app

POST_BODY = {
    "author": "Alice",
    "email": "alice@example.com",
    "message": "Hello from the API tests",
}


@pytest.fixture(name="client")
def client_fixture(session: Session, clock: FixedClock, notifier: RecordingNotifier):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_gateway] = lambda: notifier
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


console = Console()


def _log_response_json(title: str, response_json: dict[str, Any] | list[Any]) -> None:
    pretty = json.dumps(response_json, indent=2, ensure_ascii=False)
    syntax = Syntax(pretty, "json", theme="monokai", word_wrap=False)
    console.rule(title)
    console.print(syntax)


def _setup_logging_once() -> None:
    if any(isinstance(h, RichHandler) for h in logging.getLogger().handlers):
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _publish(client: TestClient, notifier: RecordingNotifier, **overrides):
    """Publish a post and return the API response and its management tokens."""
    response = client.post("/api/v1/posts", json={**POST_BODY, **overrides})
    assert response.status_code == 201, response.text
    post, _author = notifier.sent[-1]
    return response.json(), post.edit_token, post.delete_token


def test_create_post(client: TestClient, notifier: RecordingNotifier):
    _setup_logging_once()
    response = client.post("/api/v1/posts", json=POST_BODY)

    assert response.status_code == 201
    data = response.json()
    _log_response_json("create_post response", data)
    assert data["created"]["message"] == POST_BODY["message"]
    assert data["created"]["author_name"] == "Alice"
    assert data["created"]["edited"] is False
    assert len(notifier.sent) == 1

    # Contact data and tokens stay private
    raw = response.text
    post, _ = notifier.sent[0]
    assert "alice@example.com" not in raw
    assert post.edit_token not in raw
    assert post.delete_token not in raw


def test_create_post_records_forwarded_ip(
    client: TestClient, session: Session, notifier: RecordingNotifier
):
    response = client.post(
        "/api/v1/posts",
        json=POST_BODY,
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert response.status_code == 201
    author = session.exec(select(AuthorModel)).one()
    assert author.ip_address == "203.0.113.7"


def test_second_post_is_rate_limited(
    client: TestClient, clock: FixedClock, notifier: RecordingNotifier
):
    _publish(client, notifier)

    clock.advance(seconds=60)
    response = client.post(
        "/api/v1/posts", json={**POST_BODY, "message": "One more thing"}
    )

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "120"
    detail = response.json()["detail"]
    _log_response_json("rate limited", detail)
    assert detail["remaining_seconds"] == 120
    assert detail["next_post_time"].startswith("2025-03-01T12:03:00")
    assert len(notifier.sent) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"author": "A"},
        {"author": "A much too long display name"},
        {"email": "not-an-email"},
        {"message": "Hi"},
        {"message": "          "},
        {"message": "x" * 1001},
    ],
)
def test_create_post_validation(client: TestClient, overrides: dict[str, str]):
    response = client.post("/api/v1/posts", json={**POST_BODY, **overrides})

    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Request validation failed"
    assert data["errors"]


def test_list_posts(client: TestClient, clock: FixedClock, notifier: RecordingNotifier):
    _publish(client, notifier, message="First message")
    clock.advance(minutes=4)
    _publish(client, notifier, message="Second message")
    clock.advance(seconds=5)
    _publish(client, notifier, author="Bob", email="bob@example.com")

    response = client.get("/api/v1/posts", params={"page_size": 2})

    assert response.status_code == 200
    data = response.json()
    _log_response_json("list_posts response", data)
    assert data["total_count"] == 3
    assert data["page_count"] == 2
    assert data["degraded"] is False
    assert [p["author_name"] for p in data["posts"]] == ["Bob", "Alice"]
    assert [p["author_post_count"] for p in data["posts"]] == [1, 2]
    for post in data["posts"]:
        assert set(post) == {
            "id",
            "message",
            "author_name",
            "created_at",
            "updated_at",
            "edited",
            "author_post_count",
        }


def test_list_posts_page_size_limit(client: TestClient):
    response = client.get("/api/v1/posts", params={"page_size": 1000})

    assert response.status_code == 422


def test_edit_post(client: TestClient, clock: FixedClock, notifier: RecordingNotifier):
    _, edit_token, _ = _publish(client, notifier)
    clock.advance(hours=2)

    response = client.get(f"/api/v1/posts/edit/{edit_token}")
    assert response.status_code == 200
    assert response.json()["available_until"].startswith("2025-03-02T00:00:00")

    response = client.put(
        f"/api/v1/posts/edit/{edit_token}", json={"message": "Edited via API"}
    )
    assert response.status_code == 200
    data = response.json()
    _log_response_json("edit_post response", data)
    assert data["success"] is True
    assert data["post"]["message"] == "Edited via API"
    assert data["post"]["edited"] is True

    listing = client.get("/api/v1/posts").json()
    assert listing["posts"][0]["message"] == "Edited via API"


def test_edit_after_window_is_not_found(
    client: TestClient, clock: FixedClock, notifier: RecordingNotifier
):
    _, edit_token, _ = _publish(client, notifier)
    clock.advance(hours=12, seconds=1)

    get_response = client.get(f"/api/v1/posts/edit/{edit_token}")
    put_response = client.put(
        f"/api/v1/posts/edit/{edit_token}", json={"message": "Too late now"}
    )

    assert get_response.status_code == 404
    assert put_response.status_code == 404


def test_delete_post(
    client: TestClient, clock: FixedClock, notifier: RecordingNotifier
):
    _, edit_token, delete_token = _publish(client, notifier)
    clock.advance(days=13)

    assert client.get(f"/api/v1/posts/delete/{delete_token}").status_code == 200
    response = client.delete(f"/api/v1/posts/delete/{delete_token}")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get("/api/v1/posts").json()["total_count"] == 0

    # Both links are dead afterwards
    assert client.delete(f"/api/v1/posts/delete/{delete_token}").status_code == 404
    assert client.get(f"/api/v1/posts/edit/{edit_token}").status_code == 404


def test_unavailable_responses_are_indistinguishable(
    client: TestClient, clock: FixedClock, notifier: RecordingNotifier
):
    _, _, deleted_token = _publish(client, notifier)
    client.delete(f"/api/v1/posts/delete/{deleted_token}")
    clock.advance(minutes=5)
    _, _, expired_token = _publish(client, notifier, message="Will expire")
    clock.advance(days=15)

    responses = [
        client.delete(f"/api/v1/posts/delete/{'0' * 64}"),
        client.delete(f"/api/v1/posts/delete/{deleted_token}"),
        client.delete(f"/api/v1/posts/delete/{expired_token}"),
    ]

    assert {r.status_code for r in responses} == {404}
    assert len({r.text for r in responses}) == 1


def test_storage_failures_are_server_errors(
    client: TestClient, notifier: RecordingNotifier, monkeypatch: pytest.MonkeyPatch
):
    _, edit_token, delete_token = _publish(client, notifier)

    def failing_write(self, post_id, moment, *args):
        raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

    def failing_add(self, post):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(PostRepository, "update_message", failing_write)
    monkeypatch.setattr(PostRepository, "soft_delete", failing_write)
    monkeypatch.setattr(PostRepository, "add", failing_add)

    edit = client.put(
        f"/api/v1/posts/edit/{edit_token}", json={"message": "Edited via API"}
    )
    delete = client.delete(f"/api/v1/posts/delete/{delete_token}")
    create = client.post(
        "/api/v1/posts", json={**POST_BODY, "email": "bob@example.com"}
    )

    assert edit.status_code == 500
    assert edit.json()["detail"] == EDIT_FAILED_MESSAGE
    assert delete.status_code == 500
    assert delete.json()["detail"] == DELETE_FAILED_MESSAGE
    assert create.status_code == 500
    assert create.json()["detail"] == CREATION_FAILED_MESSAGE
    assert "disk I/O" not in edit.text + delete.text + create.text


def test_message_is_returned_verbatim(client: TestClient):
    markup = "<b>bold</b> and <script>alert(1)</script>"

    response = client.post("/api/v1/posts", json={**POST_BODY, "message": markup})

    assert response.status_code == 201
    assert response.json()["created"]["message"] == markup
    assert client.get("/api/v1/posts").json()["posts"][0]["message"] == markup
