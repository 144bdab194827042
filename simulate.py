"""Random self-play for King Chu Bridge.

Plays complete games with a RandomBot in every seat and reports how the
scoring plays out: average score per seat, winning scores and how often a
bid is made exactly.

Usage:
    python simulate.py --games 200 --seed 7
"""

import argparse
import random

import numpy as np

from bots import RandomBot, play_game
from game import NUM_PLAYERS


def simulate(num_games=100, seed=None):
    """Play num_games random games. Returns a metrics dict."""
    rng = random.Random(seed)
    final_scores = []
    winning_scores = []
    tie_games = 0
    exact_bids = 0
    total_bids = 0

    def count_bids(game, events):
        nonlocal exact_bids, total_bids
        if not events.get("round_complete"):
            return
        for bid, won in zip(events["round_bids"], events["round_tricks_won"]):
            total_bids += 1
            if bid == won:
                exact_bids += 1

    for _ in range(num_games):
        bots = [RandomBot(rng=random.Random(rng.getrandbits(32))) for _ in range(NUM_PLAYERS)]
        game = play_game(bots, rng=random.Random(rng.getrandbits(32)), on_events=count_bids)
        final_scores.append(list(game.scores))
        winning_scores.append(max(game.scores))
        if len(game.winners) > 1:
            tie_games += 1

    scores = np.array(final_scores, dtype=np.int64)
    return {
        "games": num_games,
        "avg_score_by_seat": scores.mean(axis=0).tolist(),
        "avg_score": float(scores.mean()),
        "std_score": float(scores.std()),
        "avg_winning_score": float(np.mean(winning_scores)),
        "max_winning_score": int(np.max(winning_scores)),
        "min_winning_score": int(np.min(winning_scores)),
        "bid_accuracy": exact_bids / total_bids if total_bids else 0.0,
        "tie_rate": tie_games / num_games,
    }


def main():
    parser = argparse.ArgumentParser(description="Random self-play for King Chu Bridge")
    parser.add_argument("--games", type=int, default=100,
                        help="Number of complete games to play")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    m = simulate(args.games, args.seed)
    print(f"\nRandom self-play ({m['games']} games):\n")
    print(f"  {'Seat':<10} {'Avg Score':>10}")
    print(f"  {'-'*21}")
    for seat, avg in enumerate(m["avg_score_by_seat"]):
        print(f"  {seat:<10} {avg:>10.1f}")
    print()
    print(f"  Average score:     {m['avg_score']:.1f} (std {m['std_score']:.1f})")
    print(f"  Winning score:     {m['avg_winning_score']:.1f} "
          f"[{m['min_winning_score']}-{m['max_winning_score']}]")
    print(f"  Bid accuracy:      {m['bid_accuracy']:.2%}")
    print(f"  Shared victories:  {m['tie_rate']:.2%}")
    print()


if __name__ == "__main__":
    main()
