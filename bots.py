"""Random bot and a headless driver for King Chu Bridge self-play."""

import random
from game import KingChuGame, Phase


class RandomBot:
    """Picks a legal bid or card for whoever's turn it is, uniformly at random."""

    def __init__(self, rng=None):
        self.rng = rng or random.Random()

    def act(self, game):
        """Apply one move for the current seat and return the engine's events."""
        seat = game.current_seat
        if game.phase == Phase.BIDDING:
            return game.place_bid(seat, self.rng.choice(game.get_legal_bids()))
        return game.play_card(seat, self.rng.choice(game.get_legal_plays()))


def run_until_idle(game, on_events=None):
    """Drive the non-interactive phases until a player must act or the game ends."""
    while game.phase in (Phase.TRICK_WINNER_DISPLAY, Phase.ROUND_COMPLETE):
        if game.phase == Phase.TRICK_WINNER_DISPLAY:
            events = game.tick()
        else:
            events = game.advance_round()
        if on_events is not None:
            on_events(game, events)


def play_game(bots, rng=None, on_events=None):
    """Play one complete game with a bot in each seat. Returns the finished game.

    on_events, if given, is called with (game, events) after every action
    and every timed transition.
    """
    game = KingChuGame(rng=rng)
    for seat in range(len(bots)):
        game.join(f"Bot {seat}")
    game.start(game.players[0].id)

    while not game.is_game_over:
        events = bots[game.current_seat].act(game)
        if on_events is not None:
            on_events(game, events)
        run_until_idle(game, on_events)
    return game
