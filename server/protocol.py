"""Inbound WebSocket messages.

Every frame is a JSON object with a "type" discriminator. parse_message()
turns raw text into one of the models below or raises ProtocolError.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, StrictInt, StringConstraints, TypeAdapter, ValidationError

from game import MAX_NAME_LENGTH, ProtocolError, make_card

PlayerName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_NAME_LENGTH)]


class CardPayload(BaseModel):
    suit: str
    rank: str

    def to_card(self):
        return make_card(self.suit, self.rank)


class JoinMessage(BaseModel):
    type: Literal["join"]
    player_name: PlayerName


class StartGameMessage(BaseModel):
    type: Literal["start_game"]


class BidMessage(BaseModel):
    type: Literal["bid"]
    amount: StrictInt


class PlayCardMessage(BaseModel):
    type: Literal["play_card"]
    card: CardPayload


class ChatMessage(BaseModel):
    type: Literal["chat"]
    message: str = ""


class EmojiMessage(BaseModel):
    type: Literal["emoji"]
    emoji: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=16)]


InboundMessage = Annotated[
    Union[JoinMessage, StartGameMessage, BidMessage, PlayCardMessage, ChatMessage, EmojiMessage],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(InboundMessage)

MESSAGE_TYPES = ("join", "start_game", "bid", "play_card", "chat", "emoji")


def _describe(error):
    """First pydantic error as a short human-readable reason."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"][1:]) or "message"
    return f"Invalid {location}: {first['msg']}"


def parse_message(raw):
    """Validate one inbound frame (str, bytes or already-decoded dict)."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ProtocolError("Invalid message format")
    if not isinstance(raw, dict):
        raise ProtocolError("Invalid message format")

    msg_type = raw.get("type")
    if msg_type not in MESSAGE_TYPES:
        raise ProtocolError(f"Unknown message type: {msg_type}")

    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise ProtocolError(_describe(e))
