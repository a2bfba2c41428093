"""
API Tests - Chat
================
"""

from uuid import UUID, uuid4

import pytest


@pytest.fixture
def answered(monkeypatch):
    """Replace the background agent answer with a recorder."""
    calls = []

    async def record(document_id, thread_id):
        calls.append((document_id, thread_id))

    monkeypatch.setattr("routers.chat.generate_response", record)
    return calls


class TestSendMessage:

    def test_message_is_stored_and_answer_scheduled(self, api_client, auth_headers, parsed_document, answered):
        payload = {
            "document_id": parsed_document["id"],
            "thread_id": parsed_document["thread_id"],
            "prompt": "The investor is Jane Doe",
        }

        response = api_client.post("/api/v1/chat/messages", json=payload, headers=auth_headers)

        assert response.status_code == 202
        assert response.json()["status"] == "accepted"
        assert answered == [(UUID(parsed_document["id"]), parsed_document["thread_id"])]

        page = api_client.get(
            f"/api/v1/chat/threads/{parsed_document['thread_id']}/messages",
            headers=auth_headers,
        ).json()
        assert [(m["role"], m["content"]) for m in page["page"]] == [
            ("assistant", "What is the legal name of the investor?"),
            ("user", "The investor is Jane Doe"),
        ]
        assert page["is_done"] is True
        assert page["page"][1]["id"] == response.json()["message_id"]

    def test_thread_must_belong_to_document(self, api_client, auth_headers, parsed_document, answered):
        payload = {"document_id": parsed_document["id"], "thread_id": "other-thread", "prompt": "Hi"}

        response = api_client.post("/api/v1/chat/messages", json=payload, headers=auth_headers)

        assert response.status_code == 400
        assert answered == []

    def test_other_users_document(self, api_client, parsed_document, answered):
        payload = {"document_id": parsed_document["id"], "thread_id": parsed_document["thread_id"], "prompt": "Hi"}

        response = api_client.post("/api/v1/chat/messages", json=payload, headers={"X-User-Id": "other"})

        assert response.status_code == 404

    def test_unknown_document(self, api_client, auth_headers, answered):
        payload = {"document_id": str(uuid4()), "thread_id": "t", "prompt": "Hi"}
        assert api_client.post("/api/v1/chat/messages", json=payload, headers=auth_headers).status_code == 404


class TestThreadMessages:

    def test_paging(self, api_client, auth_headers, parsed_document, answered):
        for prompt in ("one", "two", "three"):
            api_client.post(
                "/api/v1/chat/messages",
                json={"document_id": parsed_document["id"], "thread_id": parsed_document["thread_id"], "prompt": prompt},
                headers=auth_headers,
            )
        url = f"/api/v1/chat/threads/{parsed_document['thread_id']}/messages"

        first = api_client.get(f"{url}?offset=0&limit=2", headers=auth_headers).json()
        second = api_client.get(f"{url}?offset=2&limit=2", headers=auth_headers).json()

        assert [m["content"] for m in first["page"]] == ["What is the legal name of the investor?", "one"]
        assert first["is_done"] is False
        assert [m["content"] for m in second["page"]] == ["two", "three"]
        assert second["is_done"] is True

    def test_other_users_thread(self, api_client, parsed_document):
        url = f"/api/v1/chat/threads/{parsed_document['thread_id']}/messages"
        assert api_client.get(url, headers={"X-User-Id": "other"}).status_code == 404
