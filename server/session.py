"""TableSession: the single King Chu Bridge table behind the WebSocket endpoint.

Owns the KingChuGame instance, the connected clients and the timers that
drive the non-interactive phases. Every inbound message and every timer
firing is handled synchronously to completion, followed by a broadcast of
the new state to every seated connection.
"""

import asyncio
import itertools
import logging
import time
from collections import deque

from game import GameError, KingChuGame, LobbyError, NUM_PLAYERS, card_str
from server.config import DEFAULTS
from server.protocol import parse_message

logger = logging.getLogger(__name__)

MAX_CHAT_LENGTH = 500


class AsyncioScheduler:
    """One-shot timers on the running event loop."""

    def call_later(self, delay, callback):
        return asyncio.get_running_loop().call_later(delay, callback)


class Connection:
    def __init__(self, conn_id, send):
        self.id = conn_id
        self.send = send
        self.player_id = None


class TableSession:
    """Wraps KingChuGame with connection management, chat and timers."""

    def __init__(self, config=None, scheduler=None, rng=None):
        self.config = dict(DEFAULTS)
        self.config.update(config or {})
        self.scheduler = scheduler or AsyncioScheduler()
        self.rng = rng

        self.connections = {}
        self._conn_ids = itertools.count(1)
        self.chat_log = deque(maxlen=self.config["chat_history_size"])
        self.game = KingChuGame(rng=rng)

    # ------------------------------------------------------------------
    # Connections

    def connect(self, send):
        """Register a transport connection. send(message_dict) must not block."""
        conn_id = next(self._conn_ids)
        self.connections[conn_id] = Connection(conn_id, send)
        logger.info("Client %s connected", conn_id)
        return conn_id

    def disconnect(self, conn_id):
        conn = self.connections.pop(conn_id, None)
        if conn is None or conn.player_id is None:
            return
        player = self.game.player_by_id(conn.player_id)
        if player is None:
            return

        logger.info("%s disconnected", player.name)
        if not self.game.started:
            events = self.game.leave(player.id)
            self._chat("system", f"{player.name} left the game. ({len(self.game.players)}/{NUM_PLAYERS})")
            if events["new_host"] is not None:
                self._chat("system", f"{events['new_host'].name} is now the host")
            self._broadcast_state()
            return

        events = self.game.abort(player.id)
        if events.get("aborted"):
            logger.warning("Game aborted: %s disconnected mid-game", player.name)
            self._chat("system", f"{player.name} disconnected. Game ended.")
            self._broadcast_state()
            self._schedule(self.config["reset_delay_seconds"], self._reset)

    # ------------------------------------------------------------------
    # Inbound messages

    def handle_message(self, conn_id, raw):
        """Process one inbound frame. Rejections go back to the sender only."""
        conn = self.connections.get(conn_id)
        if conn is None:
            return
        try:
            msg = parse_message(raw)
            logger.debug("Received %s from client %s", msg.type, conn_id)
            handler = getattr(self, f"_handle_{msg.type}")
            handler(conn, msg)
        except GameError as e:
            logger.debug("Rejected message from client %s (%s): %s", conn_id, e.kind, e.message)
            self._send(conn, {"type": "error", "kind": e.kind, "message": e.message})

    def _player_for(self, conn):
        player = self.game.player_by_id(conn.player_id) if conn.player_id else None
        if player is None:
            raise LobbyError("You have not joined this game")
        return player

    def _handle_join(self, conn, msg):
        if conn.player_id is not None and self.game.player_by_id(conn.player_id):
            raise LobbyError("You have already joined")

        player = self.game.join(msg.player_name)
        conn.player_id = player.id
        logger.info("%s joined as seat %d (%d/%d)", player.name, player.seat,
                    len(self.game.players), NUM_PLAYERS)
        if player.is_host:
            logger.info("%s is now the host", player.name)

        self._send(conn, {
            "type": "join_success",
            "player_id": player.id,
            "seat": player.seat,
            "is_host": player.is_host,
            "chat": list(self.chat_log),
        })
        self._broadcast_state()
        self._chat("system", f"{player.name} joined the game! ({len(self.game.players)}/{NUM_PLAYERS})")

    def _handle_start_game(self, conn, msg):
        self.game.start(conn.player_id)
        logger.info("Game started, %s bids first", self._name(self.game.round_start_seat))
        self._chat("system", "Game started! Good luck everyone!")
        self._announce_round()
        self._broadcast_state()

    def _handle_bid(self, conn, msg):
        player = self._player_for(conn)
        events = self.game.place_bid(player.seat, msg.amount)

        amount = events["bid"]
        self._chat("system", f"{player.name} bids {amount} trick{'s' if amount != 1 else ''}")
        if events["bidding_complete"]:
            leader = self._name(self.game.current_seat)
            self._chat("system", f"All bids complete! {leader} leads the first trick.")
        else:
            self._chat("system", f"{self._name(self.game.current_seat)}'s turn to bid...")
        self._broadcast_state()

    def _handle_play_card(self, conn, msg):
        player = self._player_for(conn)
        card = msg.card.to_card()
        events = self.game.play_card(player.seat, card)

        self._chat("player", f"{player.name} plays {card_str(card)}")
        if events["trick_complete"]:
            winner = self._name(events["trick_winner"])
            logger.info("%s wins the trick with %s", winner, card_str(events["winning_card"]))
            self._chat("system", f"{winner} wins the trick!")
            self._broadcast_state()
            self._schedule(self.config["trick_tick_seconds"], self._on_tick)
        else:
            self._chat("system", f"{self._name(self.game.current_seat)}'s turn to play...")
            self._broadcast_state()

    def _handle_chat(self, conn, msg):
        player = self._player_for(conn)
        text = msg.message.strip()[:MAX_CHAT_LENGTH]
        if text:
            self._chat("player", f"{player.name}: {text}")

    def _handle_emoji(self, conn, msg):
        player = self._player_for(conn)
        self._chat("player", f"{player.name}: {msg.emoji}")

    # ------------------------------------------------------------------
    # Timed transitions

    def _schedule(self, delay, callback):
        """Run callback once after delay, unless the table has been reset meanwhile."""
        game = self.game

        def fire():
            if self.game is not game:
                return
            callback()

        self.scheduler.call_later(delay, fire)

    def _on_tick(self):
        events = self.game.tick()
        if not events:
            return
        if events.get("round_complete"):
            self._on_round_complete(events)
        elif "next_leader" in events:
            self._chat("system", f"{self._name(events['next_leader'])} leads the next trick!")
            self._broadcast_state()
        else:
            self._broadcast_state()
            self._schedule(self.config["trick_tick_seconds"], self._on_tick)

    def _on_round_complete(self, events):
        logger.info("Round %d complete, scores %s", events["round_number"], self.game.scores)
        lines = [f"Round {events['round_number']} Complete"]
        order = sorted(range(NUM_PLAYERS), key=lambda s: events["round_scores"][s], reverse=True)
        for seat in order:
            bid = events["round_bids"][seat]
            won = events["round_tricks_won"][seat]
            status = "made" if bid == won else "missed"
            lines.append(f"{self._name(seat)}: bid {bid}, won {won}, {status} "
                         f"{events['round_scores'][seat]:+d} pts (Total: {self.game.scores[seat]})")
        self._chat("system", "\n".join(lines))
        self._broadcast_state()

        if events["final_round"]:
            delay = self.config["game_delay_seconds"]
        else:
            delay = self.config["round_delay_seconds"]
        self._schedule(delay, self._on_advance_round)

    def _on_advance_round(self):
        events = self.game.advance_round()
        if events.get("game_over"):
            self._announce_winners(events)
            self._broadcast_state()
            self._schedule(self.config["reset_delay_seconds"], self._reset)
        elif events.get("round_started"):
            logger.info("Dealing round %d", events["round_started"])
            self._announce_round()
            self._broadcast_state()

    def _reset(self):
        logger.info("Resetting table")
        self.game = KingChuGame(rng=self.rng)
        for conn in list(self.connections.values()):
            conn.player_id = None
            self._send(conn, {
                "type": "table_reset",
                "message": "The table has been reset. Join again to play.",
            })

    # ------------------------------------------------------------------
    # Narration

    def _name(self, seat):
        return self.game.players[seat].name

    def _announce_round(self):
        game = self.game
        if game.trump is None:
            self._chat("system", f"Round {game.round_number}: Dynamic trump - "
                                 "the first card of each trick sets trump!")
        else:
            self._chat("system", f"Round {game.round_number}: Trump suit is {game.trump}")
        self._chat("system", f"{self._name(game.round_start_seat)} bids first "
                             "and will lead the first trick!")

    def _announce_winners(self, events):
        winners = [self._name(seat) for seat in events["winners"]]
        best = events["winning_score"]
        logger.info("Game complete, winners %s with %d", winners, best)
        if len(winners) == 1:
            self._chat("system", f"{winners[0]} wins with {best} points!")
        else:
            self._chat("system", f"Tie between {' and '.join(winners)} with {best} points!")

        lines = ["FINAL RANKINGS:"]
        for rank, seat in enumerate(self.game.rankings(), 1):
            lines.append(f"#{rank}: {self._name(seat)} - {self.game.scores[seat]} points")
        self._chat("system", "\n".join(lines))

    # ------------------------------------------------------------------
    # Outbound

    def _send(self, conn, message):
        conn.send(message)

    def _chat(self, kind, text):
        entry = {"type": "chat", "kind": kind, "message": text, "timestamp": time.time()}
        self.chat_log.append(entry)
        logger.debug("chat %s: %s", kind, text)
        for conn in list(self.connections.values()):
            if conn.player_id is not None:
                self._send(conn, entry)

    def _broadcast_state(self):
        """Send each seated connection the table as seen from its own seat."""
        for conn in list(self.connections.values()):
            if conn.player_id is None:
                continue
            player = self.game.player_by_id(conn.player_id)
            if player is None:
                continue
            self._send(conn, {"type": "game_state", "state": self.game.get_state(player.seat)})

    def status(self):
        game = self.game
        return {
            "phase": game.phase.value,
            "round_number": game.round_number,
            "player_count": len(game.players),
            "players": [p.name for p in game.players],
        }
