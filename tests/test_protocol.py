"""Inbound message validation."""
import pytest

from game import ProtocolError, make_card
from server.protocol import BidMessage, JoinMessage, PlayCardMessage, parse_message


def test_parses_each_message_type():
    assert isinstance(parse_message('{"type": "join", "player_name": " Ana "}'), JoinMessage)
    assert parse_message({"type": "join", "player_name": " Ana "}).player_name == "Ana"
    assert parse_message({"type": "start_game"}).type == "start_game"
    assert parse_message({"type": "bid", "amount": 3}) == BidMessage(type="bid", amount=3)
    assert parse_message({"type": "chat"}).message == ""
    assert parse_message({"type": "emoji", "emoji": "👍"}).emoji == "👍"


def test_play_card_payload_becomes_card():
    msg = parse_message({"type": "play_card", "card": {"suit": "♥", "rank": "Q"}})
    assert isinstance(msg, PlayCardMessage)
    assert msg.card.to_card() == make_card("♥", "Q")
    assert msg.card.to_card().value == 12


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    b"\xff\xfe",
    {"type": "fold"},
    {"player_name": "Ana"},
    {"type": "join"},
    {"type": "join", "player_name": "   "},
    {"type": "join", "player_name": "x" * 33},
    {"type": "bid", "amount": "2"},
    {"type": "bid", "amount": 1.5},
    {"type": "bid", "amount": True},
    {"type": "play_card", "card": {"suit": "♥"}},
    {"type": "emoji", "emoji": ""},
])
def test_rejects_malformed(raw):
    with pytest.raises(ProtocolError):
        parse_message(raw)
