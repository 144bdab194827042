"""King Chu Bridge game engine. Pure game logic, no transport dependencies.

Four players, thirteen rounds. Round N deals N cards to each seat. Every
player bids how many tricks they will take, the last bidder may not make the
total equal N, and exact bids score 10 + bid^2 while misses cost the squared
difference. Round 13 has no fixed trump: each trick's lead suit is trump for
that trick.

Seats are 0-3. Per-seat data (hands, bids, tricks won, scores) lives in
lists indexed by seat.
"""

from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
import random
import uuid

NUM_PLAYERS = 4
NUM_ROUNDS = 13
TRICK_DISPLAY_TICKS = 3
MAX_NAME_LENGTH = 32

SUITS = ["♠", "♥", "♦", "♣"]
RANKS = ["2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"]
FACE_VALUES = {"J": 11, "Q": 12, "K": 13, "A": 14}

Card = namedtuple("Card", ["suit", "rank", "value"])
Play = namedtuple("Play", ["card", "seat"])
TrickRecord = namedtuple("TrickRecord", ["round_number", "plays", "winner", "lead_suit", "trump"])


class GameError(Exception):
    """An action was rejected. State is never modified when this is raised."""

    kind = "error"

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ProtocolError(GameError):
    kind = "protocol"


class TurnError(GameError):
    kind = "turn"


class RuleError(GameError):
    kind = "rule"


class LobbyError(GameError):
    kind = "lobby"


def value_of(rank):
    """Numeric strength of a rank: 2-10 literally, J=11, Q=12, K=13, A=14."""
    if rank in FACE_VALUES:
        return FACE_VALUES[rank]
    if rank not in RANKS:
        raise ProtocolError(f"Unknown rank: {rank!r}")
    return int(rank)


def make_card(suit, rank):
    """Create a card, deriving its value from the rank."""
    if suit not in SUITS:
        raise ProtocolError(f"Unknown suit: {suit!r}")
    return Card(suit, rank, value_of(rank))


def card_str(card):
    return f"{card.rank}{card.suit}"


def card_dict(card):
    return {"suit": card.suit, "rank": card.rank, "value": card.value}


def shuffle_deck(deck, rng):
    """In-place Fisher-Yates shuffle, swapping backwards from the last card."""
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randrange(i + 1)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def build_deck(rng=None):
    """Return all 52 cards in a uniformly random order."""
    deck = [make_card(suit, rank) for suit in SUITS for rank in RANKS]
    return shuffle_deck(deck, rng or random.Random())


def resolve_trick(plays, lead_suit, trump):
    """Return the winning play of a trick.

    Challengers are compared against the running best in order:
    trump over non-trump, higher trump, higher lead-suit card, lead suit over
    an off-suit discard. Ties keep the earlier play. A trump of None means
    no card is trump.
    """
    best = plays[0]
    for play in plays[1:]:
        card, best_card = play.card, best.card
        is_trump = trump is not None and card.suit == trump
        best_is_trump = trump is not None and best_card.suit == trump

        if is_trump and not best_is_trump:
            best = play
        elif is_trump and best_is_trump:
            if card.value > best_card.value:
                best = play
        elif card.suit == lead_suit and best_card.suit == lead_suit:
            if card.value > best_card.value:
                best = play
        elif card.suit == lead_suit and not best_is_trump:
            best = play
    return best


def round_score(bid, tricks_won):
    """Points for one round: 10 + bid^2 when exact, minus the squared miss otherwise."""
    if bid == tricks_won:
        return 10 + bid * bid
    difference = abs(bid - tricks_won)
    return -(difference * difference)


def forbidden_bid(bids, round_number):
    """Return the value the last bidder may not choose, or None.

    Only restricts when exactly three of the four seats have bid. The
    forbidden value is the one that would make the total equal round_number.
    """
    placed = [b for b in bids if b is not None]
    if len(placed) != NUM_PLAYERS - 1:
        return None
    forbidden = round_number - sum(placed)
    if 0 <= forbidden <= round_number:
        return forbidden
    return None


def is_card_playable(card, hand, lead_suit):
    """Must follow the lead suit when holding it; anything goes otherwise."""
    if lead_suit is None:
        return True
    if card.suit == lead_suit:
        return True
    return not any(c.suit == lead_suit for c in hand)


class Phase(str, Enum):
    WAITING = "waiting"
    DEALING = "dealing"
    BIDDING = "bidding"
    PLAYING = "playing"
    TRICK_WINNER_DISPLAY = "trick_winner_display"
    ROUND_COMPLETE = "round_complete"
    GAME_COMPLETE = "game_complete"
    ENDED = "ended"


IN_PROGRESS = (
    Phase.DEALING,
    Phase.BIDDING,
    Phase.PLAYING,
    Phase.TRICK_WINNER_DISPLAY,
    Phase.ROUND_COMPLETE,
)


@dataclass
class Player:
    id: str
    name: str
    seat: int
    is_host: bool = False

    def to_dict(self):
        return {"id": self.id, "name": self.name, "seat": self.seat, "is_host": self.is_host}


class KingChuGame:
    """One table of King Chu Bridge, from the lobby to the final scores.

    Player actions (join, start, place_bid, play_card) raise a GameError
    subclass when illegal and otherwise return a dict of events describing
    what happened. The timed phases are advanced by tick() and
    advance_round(), which are no-ops outside their phase so a late or
    repeated timer cannot corrupt the state.
    """

    def __init__(self, rng=None):
        self.rng = rng or random.Random()
        self.players = []
        self.started = False
        self.phase = Phase.WAITING

        self.round_number = 1
        self.round_start_seat = 0
        self.current_seat = None

        self.deck = []
        self.hands = [[] for _ in range(NUM_PLAYERS)]
        self.bids = [None] * NUM_PLAYERS
        self.tricks_won = [0] * NUM_PLAYERS
        self.scores = [0] * NUM_PLAYERS

        self.trump = None
        self.trump_card = None
        self.dynamic_trump = None
        self.lead_suit = None
        self.current_trick = []
        self.trick_history = []
        self.trick_winner_seat = None
        self.trick_countdown = 0

        self.last_round_scores = None
        self.winners = None
        self.ended_by = None

        self._completing_trick = False
        self._completing_round = False

    # ------------------------------------------------------------------
    # Lobby

    def player_by_id(self, player_id):
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def join(self, name):
        """Seat a new player. The first to join hosts the table."""
        name = (name or "").strip()
        if not name:
            raise ProtocolError("Player name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ProtocolError(f"Player name is limited to {MAX_NAME_LENGTH} characters")
        if len(self.players) >= NUM_PLAYERS:
            raise LobbyError(f"Game is full ({NUM_PLAYERS} players maximum)")
        if self.started:
            raise LobbyError("Game already in progress")
        if any(p.name == name for p in self.players):
            raise LobbyError("Player name already taken")

        player = Player(
            id=uuid.uuid4().hex,
            name=name,
            seat=len(self.players),
            is_host=not self.players,
        )
        self.players.append(player)
        return player

    def leave(self, player_id):
        """Remove a player before the game starts, compacting seats.

        If the host leaves, the player now in seat 0 becomes host.
        """
        if self.started:
            raise LobbyError("Cannot leave a game in progress")
        player = self.player_by_id(player_id)
        if player is None:
            raise LobbyError("You have not joined this game")

        self.players.remove(player)
        for seat, p in enumerate(self.players):
            p.seat = seat
        new_host = None
        if player.is_host and self.players:
            self.players[0].is_host = True
            new_host = self.players[0]
        return {"left": player, "new_host": new_host}

    def start(self, player_id):
        """Host-only: start the game once all four seats are filled."""
        player = self.player_by_id(player_id)
        if player is None or not player.is_host:
            raise LobbyError("Only the host can start the game")
        if len(self.players) < NUM_PLAYERS:
            raise LobbyError(
                f"Need {NUM_PLAYERS} players to start (currently {len(self.players)})"
            )
        if self.started or self.phase != Phase.WAITING:
            raise LobbyError("Game already started")

        self.started = True
        self.round_number = 1
        self.scores = [0] * NUM_PLAYERS
        self.round_start_seat = self.rng.randrange(NUM_PLAYERS)
        self._deal()
        return {"started": True, "round_started": self.round_number}

    # ------------------------------------------------------------------
    # Dealing and bidding

    def _deal(self):
        """Shuffle, deal round_number cards to each seat and turn up trump."""
        self.phase = Phase.DEALING
        self.current_trick = []
        self.lead_suit = None
        self.dynamic_trump = None
        self.trick_winner_seat = None
        self.trick_countdown = 0
        self.bids = [None] * NUM_PLAYERS
        self.tricks_won = [0] * NUM_PLAYERS
        self.hands = [[] for _ in range(NUM_PLAYERS)]

        self.deck = build_deck(self.rng)
        for _ in range(self.round_number):
            for seat in range(NUM_PLAYERS):
                self.hands[seat].append(self.deck.pop())

        if self.round_number == NUM_ROUNDS:
            self.trump_card = None
            self.trump = None
        elif self.deck:
            self.trump_card = self.deck[-1]
            self.trump = self.trump_card.suit
        else:
            self.trump_card = None
            self.trump = self.rng.choice(SUITS)

        self._completing_trick = False
        self._completing_round = False
        self.phase = Phase.BIDDING
        self.current_seat = self.round_start_seat

    def get_legal_bids(self, seat=None):
        """Bids the current bidder may place, excluding the forbidden one."""
        if self.phase != Phase.BIDDING:
            return []
        if seat is not None and seat != self.current_seat:
            return []
        forbidden = forbidden_bid(self.bids, self.round_number)
        return [b for b in range(self.round_number + 1) if b != forbidden]

    def place_bid(self, seat, amount):
        if self.phase != Phase.BIDDING:
            raise TurnError("Bidding phase is over!")
        if seat != self.current_seat:
            raise TurnError("Not your turn to bid!")
        if self.bids[seat] is not None:
            raise RuleError("You have already placed your bid!")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ProtocolError("Bid amount must be an integer")
        if amount < 0 or amount > self.round_number:
            raise RuleError(f"Bid must be between 0 and {self.round_number}")
        forbidden = forbidden_bid(self.bids, self.round_number)
        if forbidden is not None and amount == forbidden:
            raise RuleError(
                f"Cannot bid {amount} - total would equal {self.round_number} cards!"
            )

        self.bids[seat] = amount
        events = {"seat": seat, "bid": amount, "bidding_complete": False}

        if all(b is not None for b in self.bids):
            self.phase = Phase.PLAYING
            self.current_seat = self.round_start_seat
            events["bidding_complete"] = True
        else:
            next_seat = (seat + 1) % NUM_PLAYERS
            while self.bids[next_seat] is not None:
                next_seat = (next_seat + 1) % NUM_PLAYERS
            self.current_seat = next_seat
        return events

    # ------------------------------------------------------------------
    # Playing

    def get_legal_plays(self, seat=None):
        if self.phase != Phase.PLAYING:
            return []
        if seat is not None and seat != self.current_seat:
            return []
        hand = self.hands[self.current_seat]
        return [c for c in hand if is_card_playable(c, hand, self.lead_suit)]

    def play_card(self, seat, card):
        """Play a card from seat's hand. Returns dict with game events."""
        if self.phase != Phase.PLAYING:
            raise TurnError("Not in playing phase!")
        if seat != self.current_seat:
            raise TurnError("Not your turn to play!")
        hand = self.hands[seat]
        if card not in hand:
            raise RuleError(f"You don't have {card_str(card)}!")
        if not is_card_playable(card, hand, self.lead_suit):
            raise RuleError("Cannot play this card - must follow suit if possible!")

        hand.remove(card)
        self.current_trick.append(Play(card, seat))
        if len(self.current_trick) == 1:
            self.lead_suit = card.suit
            if self.round_number == NUM_ROUNDS:
                self.dynamic_trump = card.suit

        events = {"seat": seat, "card": card, "trick_complete": False}
        if len(self.current_trick) == NUM_PLAYERS:
            events.update(self._complete_trick())
        else:
            self.current_seat = (seat + 1) % NUM_PLAYERS
        return events

    @property
    def effective_trump(self):
        """Trump for the trick in progress."""
        if self.dynamic_trump is not None:
            return self.dynamic_trump
        return self.trump

    def _complete_trick(self):
        """Resolve a full trick and enter the winner display."""
        if self._completing_trick or len(self.current_trick) < NUM_PLAYERS:
            return {}
        self._completing_trick = True

        trump = self.effective_trump
        winner = resolve_trick(self.current_trick, self.lead_suit, trump)
        self.tricks_won[winner.seat] += 1
        self.trick_history.append(TrickRecord(
            round_number=self.round_number,
            plays=list(self.current_trick),
            winner=winner,
            lead_suit=self.lead_suit,
            trump=trump,
        ))

        self.trick_winner_seat = winner.seat
        self.trick_countdown = TRICK_DISPLAY_TICKS
        self.current_seat = None
        self.phase = Phase.TRICK_WINNER_DISPLAY
        return {"trick_complete": True, "trick_winner": winner.seat, "winning_card": winner.card}

    def tick(self):
        """One second of the trick winner display.

        When the countdown runs out the trick is cleared and the winner
        leads, or the round is scored if every hand is empty.
        """
        if self.phase != Phase.TRICK_WINNER_DISPLAY:
            return {}
        self.trick_countdown -= 1
        if self.trick_countdown > 0:
            return {"countdown": self.trick_countdown}
        return self._clear_trick()

    def _clear_trick(self):
        winner_seat = self.trick_winner_seat
        self.current_trick = []
        self.lead_suit = None
        self.dynamic_trump = None
        self.trick_winner_seat = None
        self.trick_countdown = 0
        self._completing_trick = False

        self.current_seat = winner_seat
        if all(not hand for hand in self.hands):
            return self._complete_round()
        self.phase = Phase.PLAYING
        return {"countdown": 0, "next_leader": winner_seat}

    # ------------------------------------------------------------------
    # Round and game completion

    def _complete_round(self):
        if self._completing_round:
            return {}
        self._completing_round = True

        self.phase = Phase.ROUND_COMPLETE
        self.current_seat = None
        round_scores = [round_score(self.bids[s], self.tricks_won[s]) for s in range(NUM_PLAYERS)]
        for seat in range(NUM_PLAYERS):
            self.scores[seat] += round_scores[seat]
        self.last_round_scores = round_scores
        return {
            "round_complete": True,
            "round_number": self.round_number,
            "round_scores": round_scores,
            "round_bids": list(self.bids),
            "round_tricks_won": list(self.tricks_won),
            "final_round": self.round_number >= NUM_ROUNDS,
        }

    def advance_round(self):
        """Leave round_complete: deal the next round or finish the game."""
        if self.phase != Phase.ROUND_COMPLETE:
            return {}
        if self.round_number >= NUM_ROUNDS:
            return self._complete_game()
        self.round_number += 1
        self.round_start_seat = (self.round_start_seat + 1) % NUM_PLAYERS
        self._deal()
        return {"round_started": self.round_number}

    def _complete_game(self):
        self.phase = Phase.GAME_COMPLETE
        self.current_seat = None
        best = max(self.scores)
        self.winners = [seat for seat in range(NUM_PLAYERS) if self.scores[seat] == best]
        return {"game_over": True, "winners": list(self.winners), "winning_score": best}

    def abort(self, player_id):
        """A seated player disconnected mid-game. There is no recovery."""
        if self.phase not in IN_PROGRESS:
            return {}
        player = self.player_by_id(player_id)
        self.phase = Phase.ENDED
        self.current_seat = None
        self.ended_by = player.name if player else None
        return {"aborted": True, "player": player}

    @property
    def is_game_over(self):
        return self.phase in (Phase.GAME_COMPLETE, Phase.ENDED)

    def rankings(self):
        """Seats ordered by cumulative score, best first."""
        return sorted(range(len(self.players)), key=lambda s: self.scores[s], reverse=True)

    def cards_played_this_round(self):
        played = sum(
            len(t.plays) for t in self.trick_history if t.round_number == self.round_number
        )
        if self._completing_trick:
            return played
        return played + len(self.current_trick)

    # ------------------------------------------------------------------
    # Projection

    def get_state(self, seat=None):
        """Return the table as seen from one seat.

        Only that seat's hand is included. Other seats appear as card counts.
        A seat of None gives the public view with no hand at all.
        """
        state = {
            "players": [p.to_dict() for p in self.players],
            "player_count": len(self.players),
            "game_started": self.started,
            "phase": self.phase.value,
            "round_number": self.round_number,
            "num_rounds": NUM_ROUNDS,
            "round_start_seat": self.round_start_seat,
            "current_seat": self.current_seat,
            "trump": self.trump,
            "trump_card": card_dict(self.trump_card) if self.trump_card else None,
            "dynamic_trump": self.dynamic_trump,
            "lead_suit": self.lead_suit,
            "current_trick": [
                {"seat": p.seat, "card": card_dict(p.card)} for p in self.current_trick
            ],
            "bids": list(self.bids),
            "tricks_won": list(self.tricks_won),
            "scores": list(self.scores),
            "trick_winner_seat": self.trick_winner_seat,
            "trick_countdown": self.trick_countdown,
            "hand_counts": [len(h) for h in self.hands],
            "last_round_scores": self.last_round_scores,
            "winners": self.winners,
            "ended_by": self.ended_by,
            "trick_history": [
                {
                    "plays": [{"seat": p.seat, "card": card_dict(p.card)} for p in t.plays],
                    "winner": t.winner.seat,
                    "lead_suit": t.lead_suit,
                    "trump": t.trump,
                }
                for t in self.trick_history
                if t.round_number == self.round_number
            ],
        }

        if seat is not None:
            state["seat"] = seat
            state["hand"] = [card_dict(c) for c in self.hands[seat]]
            if seat == self.current_seat:
                if self.phase == Phase.BIDDING:
                    state["legal_bids"] = self.get_legal_bids()
                    state["forbidden_bid"] = forbidden_bid(self.bids, self.round_number)
                elif self.phase == Phase.PLAYING:
                    state["legal_plays"] = [card_dict(c) for c in self.get_legal_plays()]
        return state
