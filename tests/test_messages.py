from datetime import datetime, timezone

import pytest
from fastapi import status
from sqlalchemy import delete, select, update

from app import messages_crud, models, schemas
from app.core import get_settings
from app.models import MessageVisibility
from app.schemas import MessageCreate
from app.errors import InvalidArgument, NotFound


def send(client, headers, recipient_id, content="hi"):
    return client.post(
        "/messages", headers=headers, json={"recipient_id": recipient_id, "content": content}
    )


def box(client, headers, container):
    response = client.get(f"/messages?container={container}", headers=headers)
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def stored(db_session, message_id):
    db_session.expire_all()
    return db_session.execute(
        select(models.Message).where(models.Message.id == message_id)
    ).scalar_one_or_none()


def test_visibility_states():
    assert MessageVisibility.from_flags(False, False) is MessageVisibility.VISIBLE
    assert MessageVisibility.from_flags(True, False) is MessageVisibility.HIDDEN_FOR_SENDER
    assert MessageVisibility.from_flags(False, True) is MessageVisibility.HIDDEN_FOR_RECIPIENT
    assert MessageVisibility.from_flags(True, True) is None


def test_send_message_projection(client, make_member):
    alice, alice_headers = make_member("alice@example.com", "Alice")
    bob, _ = make_member("bob@example.com", "Bob")

    response = send(client, alice_headers, bob.id)
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["sender_id"] == alice.id
    assert data["sender_name"] == "Alice"
    assert data["recipient_name"] == "Bob"
    assert data["content"] == "hi"
    assert data["date_read"] is None


def test_send_message_errors(client, make_member):
    alice, headers = make_member("alice@example.com")
    assert send(client, headers, alice.id).status_code == status.HTTP_400_BAD_REQUEST
    assert send(client, headers, "nobody").status_code == status.HTTP_404_NOT_FOUND
    assert send(client, headers, "nobody", content="").status_code == status.HTTP_400_BAD_REQUEST
    too_long = send(client, headers, "nobody", content="x" * 501)
    assert too_long.status_code == status.HTTP_400_BAD_REQUEST


def test_blank_content_is_invalid(db_session, make_member):
    alice, _ = make_member("alice@example.com")
    bob, _ = make_member("bob@example.com")
    with pytest.raises(InvalidArgument):
        messages_crud.send_message(
            db_session, alice.id, MessageCreate(recipient_id=bob.id, content="   ")
        )


def test_read_receipt_scenario(client, make_member):
    alice, alice_headers = make_member("alice@example.com", "Alice")
    bob, bob_headers = make_member("bob@example.com", "Bob")
    sent = send(client, alice_headers, bob.id).json()
    assert sent["date_read"] is None

    assert [m["id"] for m in box(client, bob_headers, "unread")] == [sent["id"]]

    thread = client.get(f"/messages/thread/{alice.id}", headers=bob_headers).json()
    assert [m["id"] for m in thread] == [sent["id"]]
    assert thread[0]["date_read"] is not None

    assert box(client, alice_headers, "unread") == []
    assert box(client, bob_headers, "unread") == []
    assert box(client, bob_headers, "inbox")[0]["date_read"] is not None


def test_sender_viewing_thread_does_not_mark_read(client, make_member):
    _, alice_headers = make_member("alice@example.com")
    bob, bob_headers = make_member("bob@example.com")
    send(client, alice_headers, bob.id)

    thread = client.get(f"/messages/thread/{bob.id}", headers=alice_headers).json()
    assert thread[0]["date_read"] is None
    assert len(box(client, bob_headers, "unread")) == 1


def test_thread_is_ordered_and_read_time_never_changes(client, make_member):
    alice, alice_headers = make_member("alice@example.com")
    bob, bob_headers = make_member("bob@example.com")
    first = send(client, alice_headers, bob.id, "one").json()
    second = send(client, bob_headers, alice.id, "two").json()
    third = send(client, alice_headers, bob.id, "three").json()

    initial = client.get(f"/messages/thread/{alice.id}", headers=bob_headers).json()
    again = client.get(f"/messages/thread/{alice.id}", headers=bob_headers).json()

    assert [m["id"] for m in initial] == [first["id"], second["id"], third["id"]]
    assert [(m["id"], m["content"]) for m in again] == [
        (m["id"], m["content"]) for m in initial
    ]
    assert again[0]["date_read"] == initial[0]["date_read"]
    assert again[2]["date_read"] == initial[2]["date_read"]
    # bob's own message stays unread until alice opens the thread
    assert again[1]["date_read"] is None


def test_mailboxes(client, make_member):
    alice, alice_headers = make_member("alice@example.com")
    bob, bob_headers = make_member("bob@example.com")
    first = send(client, alice_headers, bob.id, "one").json()
    second = send(client, alice_headers, bob.id, "two").json()

    assert [m["id"] for m in box(client, bob_headers, "inbox")] == [second["id"], first["id"]]
    assert [m["id"] for m in box(client, alice_headers, "outbox")] == [
        second["id"],
        first["id"],
    ]
    assert box(client, alice_headers, "inbox") == []
    assert box(client, bob_headers, "archive") == []
    default = client.get("/messages", headers=bob_headers).json()
    assert len(default) == 2


def test_one_sided_delete_hides_message_for_that_side(client, db_session, make_member):
    alice, alice_headers = make_member("alice@example.com")
    bob, bob_headers = make_member("bob@example.com")
    sent = send(client, alice_headers, bob.id).json()

    response = client.delete(f"/messages/{sent['id']}", headers=alice_headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT

    assert box(client, alice_headers, "outbox") == []
    assert client.get(f"/messages/thread/{bob.id}", headers=alice_headers).json() == []
    assert len(box(client, bob_headers, "inbox")) == 1
    assert stored(db_session, sent["id"]).visibility is MessageVisibility.HIDDEN_FOR_SENDER


def test_delete_from_both_sides_destroys_message(client, db_session, make_member):
    alice, alice_headers = make_member("alice@example.com")
    bob, bob_headers = make_member("bob@example.com")
    sent = send(client, alice_headers, bob.id).json()

    client.delete(f"/messages/{sent['id']}", headers=bob_headers)
    assert box(client, bob_headers, "inbox") == []
    assert box(client, bob_headers, "unread") == []
    client.delete(f"/messages/{sent['id']}", headers=alice_headers)

    assert stored(db_session, sent["id"]) is None
    assert client.get(f"/messages/thread/{alice.id}", headers=bob_headers).json() == []
    missing = client.delete(f"/messages/{sent['id']}", headers=alice_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_delete_by_outsider_is_a_no_op(db_session, make_member):
    alice, _ = make_member("alice@example.com")
    bob, _ = make_member("bob@example.com")
    carl, _ = make_member("carl@example.com")
    sent = messages_crud.send_message(
        db_session, alice.id, MessageCreate(recipient_id=bob.id, content="hi")
    )

    state = messages_crud.delete_message(db_session, carl.id, sent.id)
    assert state is MessageVisibility.VISIBLE
    assert stored(db_session, sent.id).visibility is MessageVisibility.VISIBLE


def test_delete_returns_resulting_state(db_session, make_member):
    alice, _ = make_member("alice@example.com")
    bob, _ = make_member("bob@example.com")
    sent = messages_crud.send_message(
        db_session, alice.id, MessageCreate(recipient_id=bob.id, content="hi")
    )

    assert (
        messages_crud.delete_message(db_session, bob.id, sent.id)
        is MessageVisibility.HIDDEN_FOR_RECIPIENT
    )
    assert messages_crud.delete_message(db_session, alice.id, sent.id) is None
    with pytest.raises(NotFound):
        messages_crud.delete_message(db_session, alice.id, sent.id)


def test_deletes_from_both_sides_through_separate_sessions(session_pair, pair_members):
    first, second = session_pair
    alice_id, bob_id = pair_members
    sent = messages_crud.send_message(
        first, alice_id, MessageCreate(recipient_id=bob_id, content="hi")
    )
    # loaded by the second session before either side deleted it
    assert second.get(models.Message, sent.id).visibility is MessageVisibility.VISIBLE

    hidden = messages_crud.delete_message(first, alice_id, sent.id)
    assert hidden is MessageVisibility.HIDDEN_FOR_SENDER
    assert messages_crud.delete_message(second, bob_id, sent.id) is None
    assert stored(first, sent.id) is None


def project_after(action):
    """Patch the thread projection to run ``action`` once rows are selected."""
    project = schemas.MessageOut.from_message

    def patched(cls, message):
        action(message)
        return project(message)

    return classmethod(patched)


def test_thread_tolerates_message_removed_while_reading(
    session_pair, pair_members, monkeypatch
):
    first, second = session_pair
    alice_id, bob_id = pair_members
    sent = messages_crud.send_message(
        first, alice_id, MessageCreate(recipient_id=bob_id, content="hi")
    )

    def remove(message):
        second.execute(delete(models.Message).where(models.Message.id == message.id))
        second.commit()

    monkeypatch.setattr(schemas.MessageOut, "from_message", project_after(remove))
    thread = messages_crud.get_thread(first, bob_id, alice_id)

    assert [m.id for m in thread] == [sent.id]
    assert thread[0].date_read is None
    assert stored(first, sent.id) is None


def test_thread_reports_read_time_set_by_another_reader(
    session_pair, pair_members, monkeypatch
):
    first, second = session_pair
    alice_id, bob_id = pair_members
    sent = messages_crud.send_message(
        first, alice_id, MessageCreate(recipient_id=bob_id, content="hi")
    )
    earlier = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def mark_read(message):
        second.execute(
            update(models.Message)
            .where(models.Message.id == message.id)
            .values(date_read=earlier)
        )
        second.commit()

    monkeypatch.setattr(schemas.MessageOut, "from_message", project_after(mark_read))
    thread = messages_crud.get_thread(first, bob_id, alice_id)

    assert thread[0].date_read == earlier
    assert stored(first, sent.id).date_read.replace(tzinfo=timezone.utc) == earlier


def test_content_limit_follows_settings(client, db_session, make_member):
    alice, headers = make_member("alice@example.com")
    bob, _ = make_member("bob@example.com")
    limit = get_settings().MAX_MESSAGE_LENGTH

    assert send(client, headers, bob.id, "x" * limit).status_code == status.HTTP_201_CREATED
    too_long = send(client, headers, bob.id, "x" * (limit + 1))
    assert too_long.status_code == status.HTTP_400_BAD_REQUEST
    with pytest.raises(InvalidArgument):
        messages_crud.send_message(
            db_session,
            alice.id,
            MessageCreate.model_construct(recipient_id=bob.id, content="x" * (limit + 1)),
        )
