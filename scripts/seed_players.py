#!/usr/bin/env python3
"""
Seed the player database with sample players, optionally playing a few rounds.
Run from project root: python3 scripts/seed_players.py --count 8 --rounds 3
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dinkdrop.config import Config
from dinkdrop.persistence import SQLitePlayerStore
from dinkdrop.rng import SeededRNG
from dinkdrop.sample_data import generate_sample_players, play_sample_matches
from dinkdrop.services.core import DinkDropCore


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed DinkDrop sample players")
    parser.add_argument("--db", type=Path, default=None, help="SQLite path (default: DINKDROP_DB_PATH or data/dinkdrop.db)")
    parser.add_argument("--count", type=int, default=8)
    parser.add_argument("--rounds", type=int, default=0, help="Rounds of ranked singles to play after seeding")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--fresh", action="store_true", help="Start every player at 1000 with no history")
    args = parser.parse_args()

    config = Config.from_env()
    db_path = args.db or config.db_path
    store = SQLitePlayerStore(db_path)
    rng = SeededRNG(args.seed)
    try:
        players = generate_sample_players(rng, args.count, fresh=args.fresh or args.rounds > 0)
        for p in players:
            store.add(p)
        print(f"Seeded {len(players)} players into {db_path}")

        if args.rounds > 0:
            core = DinkDropCore(store, config=config, rng=rng)
            outcomes = play_sample_matches(core, rng, [p.id for p in players], rounds=args.rounds)
            print(f"Played {len(outcomes)} matches")

        board = [
            {"id": p.id, "name": p.display_name, "rating": p.rating, "matches": p.total_matches}
            for p in store.list_all()
        ]
        print(json.dumps(board, indent=2))
    finally:
        store.close()


if __name__ == "__main__":
    main()
