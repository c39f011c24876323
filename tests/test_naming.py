"""Unit tests for identifier and file naming helpers."""

from __future__ import annotations

import pytest

from asyncapi_client_generator.naming import (
    NameRegistry,
    channel_class_name,
    class_name,
    numbered_file_name,
    path_parameter_names,
    resolve_file_name,
    resolve_name,
    snake_case,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("sendMessage", "send_message"),
        ("SendMessage", "send_message"),
        ("HTTPStatus", "http_status"),
        ("room-id", "room_id"),
        ("class", "class_"),
        ("1st", "x_1st"),
        ("", "value"),
    ],
)
def test_snake_case(raw: str, expected: str) -> None:
    """Free text, camelCase and keywords should become valid identifiers."""
    assert snake_case(raw) == expected


def test_class_name_is_pascal_case() -> None:
    """Class names should be PascalCase."""
    assert class_name("chat_event") == "ChatEvent"
    assert class_name("sendMessage") == "SendMessage"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/", "Client"),
        ("/{id}", "Client"),
        ("/rooms/{roomId}", "RoomsClient"),
        ("/chat/rooms/{roomId}/events", "ChatRoomsEventsClient"),
    ],
)
def test_channel_class_name(path: str, expected: str) -> None:
    """Client class names should come from the literal path segments."""
    assert channel_class_name(path) == expected


def test_path_parameter_names_keep_declaration_order() -> None:
    """Path parameters should be listed in the order they appear."""
    assert path_parameter_names("/a/{first}/b/{second}") == ["first", "second"]


def test_resolve_name_appends_increasing_suffixes() -> None:
    """Collisions should be resolved with ``_1``, ``_2`` suffixes."""
    assert resolve_name("roomId", []) == "room_id"
    assert resolve_name("roomId", ["room_id"]) == "room_id_1"
    assert resolve_name("room_id", ["room_id", "room_id_1"]) == "room_id_2"


def test_resolve_name_is_deterministic() -> None:
    """Identical input should always yield identical output."""
    existing = ["self", "value", "value_1"]
    assert resolve_name("value", existing) == resolve_name("value", list(reversed(existing)))


def test_resolve_file_name_counts_existing_stems() -> None:
    """Clashing document names should become ``stem.N.ext``."""
    assert resolve_file_name("chat.yaml", [], is_json=False) == "chat.yaml"
    assert resolve_file_name("chat.yaml", ["chat.yaml"], is_json=False) == "chat.1.yaml"
    assert (
        resolve_file_name("chat.json", ["chat.json", "chat.1.json", "other.json"], is_json=True)
        == "chat.2.json"
    )


def test_numbered_file_name_keeps_extension() -> None:
    """Numbered siblings of generated sources should keep their extension."""
    assert numbered_file_name("client.py", ["client.py"]) == "client.1.py"
    assert numbered_file_name("client.py", ["client.py", "client.1.py"]) == "client.2.py"


def test_name_registry_separates_classes_and_members() -> None:
    """Class names should get numeric suffixes and members ``_N`` suffixes."""
    registry = NameRegistry()
    assert registry.claim_class("rooms_client") == "RoomsClient"
    assert registry.claim_class("RoomsClient") == "RoomsClient2"
    assert registry.claim_member("listen") == "listen"
    assert registry.claim_member("listen") == "listen_1"
