from __future__ import annotations

import time
from typing import Any


def raw_user(user_id: int, username: str | None = None) -> dict[str, Any]:
    user: dict[str, Any] = {
        "id": user_id,
        "is_bot": False,
        "first_name": f"User {user_id}",
    }
    # Usernames feed /add @username and /remove @username lookups.
    if username != "":
        user["username"] = username or f"user{user_id}"
    return user


def raw_message_update(
    *,
    update_id: int,
    user_id: int,
    chat_id: int,
    text: str,
    message_id: int,
    username: str | None = None,
) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "message": {
            "message_id": message_id,
            "date": int(time.time()),
            "chat": {"id": chat_id, "type": "private"},
            "from": raw_user(user_id, username),
            "text": text,
        },
    }


def raw_callback_update(
    *,
    update_id: int,
    from_user_id: int,
    chat_id: int,
    message_dict: dict[str, Any],
    data: str,
    callback_id: str | None = None,
) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": callback_id or str(update_id),
            "from": raw_user(from_user_id),
            "message": message_dict,
            "chat_instance": str(chat_id),
            "data": data,
        },
    }
