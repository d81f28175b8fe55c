"""
Command-line entry point.

    solvedcoach sync <handle>
    solvedcoach recommend <handle> [--category ...] [--level-min N] [--level-max N]
                                   [--tag T ...] [--include-solved] [--limit N] [--stored]
"""

import argparse
import json
import logging
import sys

from .catalog_client import SolvedAcClient
from .config import LOG_LEVEL, LOG_FORMAT, LOG_DATE_FORMAT
from .database import SessionLocal, init_db
from .errors import CoachError, HandleNotFoundError
from .query import build_realtime_recommendations, read_stored_recommendations
from .recommender import build_recommendation_stats
from .store import SnapshotStore
from .sync import run_sync, summarize_categories
from .validation import build_query, require_handle

logger = logging.getLogger(__name__)


def _cmd_sync(args, store: SnapshotStore, client: SolvedAcClient) -> int:
    handle = require_handle(args.handle)
    user = store.get_or_create_user(handle)
    job = store.create_job(user.id)

    result = run_sync(store, client, user.id, job.id)
    print(f"Synced {handle}: {len(result.items)} recommendations ({summarize_categories(result)})")
    return 0


def _cmd_recommend(args, store: SnapshotStore, client: SolvedAcClient) -> int:
    handle = require_handle(args.handle)
    query = build_query(
        limit=args.limit,
        category=args.category,
        level_min=args.level_min,
        level_max=args.level_max,
        tags=args.tag,
        exclude_solved=not args.include_solved,
    )

    user = store.get_user(handle)
    if user is not None:
        tier = user.tier
        solved_ids = store.solved_problem_ids(user.id)
        weak_scores = store.weak_scores(user.id)
    else:
        logger.info(f"{handle} has never been synced, using live profile only")
        profile = client.get_user_profile(handle)
        if profile is None:
            raise HandleNotFoundError(handle)
        tier = profile.tier
        solved_ids = set(client.get_user_solved_problem_ids(handle))
        weak_scores = {}

    if args.stored:
        snapshot = store.latest_snapshot(user.id) if user is not None else None
        stored_items = snapshot.items if snapshot is not None else []
        items = read_stored_recommendations(stored_items, client, tier, solved_ids, query)
    else:
        items = build_realtime_recommendations(client, tier, solved_ids, weak_scores, query)

    output = {
        "handle": handle,
        "items": [item.model_dump(mode="json") for item in items],
        "stats": build_recommendation_stats(items).model_dump(mode="json"),
    }
    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="solvedcoach", description="Weakness-driven problem recommendations from solved.ac.")
    sub = ap.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Fetch a handle's history and store a fresh recommendation snapshot")
    sync.add_argument("handle")
    sync.set_defaults(func=_cmd_sync)

    rec = sub.add_parser("recommend", help="Print recommendations as JSON")
    rec.add_argument("handle")
    rec.add_argument("--category", choices=["weakness", "challenge", "review", "popular", "foundation"])
    rec.add_argument("--level-min", type=int)
    rec.add_argument("--level-max", type=int)
    rec.add_argument("--tag", action="append", help="Restrict to a tag (repeatable)")
    rec.add_argument("--include-solved", action="store_true", help="Allow already solved problems")
    rec.add_argument("--limit", type=int, help="Result limit (default 120, max 300)")
    rec.add_argument("--stored", action="store_true", help="Read the latest stored snapshot instead of querying live")
    rec.set_defaults(func=_cmd_recommend)

    return ap


def main(argv=None) -> int:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    args = build_parser().parse_args(argv)

    init_db()
    db = SessionLocal()
    try:
        return args.func(args, SnapshotStore(db), SolvedAcClient())
    except CoachError as e:
        logger.error(f"{e.code.value}: {e.message}")
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
