"""
Validation of inbound client payloads.
"""

from dataclasses import dataclass
from typing import Any, Optional

from GroupChat.config import config
from GroupChat.core.message.protocol import payload_str
from GroupChat.core.server.exceptions import ValidationError

ALL_FIELDS_REQUIRED = "All fields are required"


@dataclass(frozen=True)
class JoinRequest:
    group_name: str
    password: str
    username: str


def parse_join_request(data: Any, max_username_length: Optional[int] = None) -> JoinRequest:
    """
    Validate a join-group payload.

    Group name and username are trimmed. The password is only checked for
    being non-blank; it is compared exactly as sent.

    Raises:
        ValidationError: A field is missing or blank, or the username is too long
    """
    if max_username_length is None:
        max_username_length = config.MAX_USERNAME_LENGTH

    group_name = payload_str(data, "groupName")
    username = payload_str(data, "username")
    password = data.get("password") if isinstance(data, dict) else None
    if not isinstance(password, str) or not password.strip():
        password = ""

    if not group_name or not username or not password:
        raise ValidationError(ALL_FIELDS_REQUIRED)
    if len(username) > max_username_length:
        raise ValidationError(f"Username must be at most {max_username_length} characters")
    return JoinRequest(group_name=group_name, password=password, username=username)


def clean_message_text(data: Any, max_length: Optional[int] = None) -> str:
    """
    Trimmed message body of a send-message payload.

    Returns '' for a missing or blank body (callers drop those silently).

    Raises:
        ValidationError: The body is longer than ``max_length``
    """
    if max_length is None:
        max_length = config.MAX_MESSAGE_LENGTH
    text = payload_str(data, "message")
    if len(text) > max_length:
        raise ValidationError(f"Message must be at most {max_length} characters")
    return text
