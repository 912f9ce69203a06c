import argparse
import asyncio
import atexit
import logging
import re

import numpy as np

from .candidates import CandidateAggregator
from .catalog import TMDBCatalog
from .config import DEFAULT_USER, TMDB_API_KEY, PROVIDER_TIMEOUT
from .database import SQLiteStore, close_pool
from .feed import Feed, FeedComposer
from .interactions import WatchHistory
from .models import Action, MediaKind
from .recommender import genre_name
from .settings import SettingsStore
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)


def _validate_user(user: str) -> str:
    """Lowercased alphanumerics plus underscores/hyphens only."""
    sanitized = re.sub(r'[^a-z0-9_-]', '', user.lower())
    if sanitized != user.lower():
        logger.warning(f"User '{user}' sanitized to '{sanitized}'")
    return sanitized or DEFAULT_USER


def _load(args: argparse.Namespace) -> tuple[SQLiteStore, ActivityTracker]:
    store = SQLiteStore()
    return store, ActivityTracker.load(store, _validate_user(args.user))


def _genre_label(genre_id: int) -> str:
    return genre_name(genre_id, f"Genre {genre_id}")


def cmd_track(args: argparse.Namespace) -> None:
    """Record a raw interaction."""
    store, tracker = _load(args)
    try:
        event = tracker.track(args.id, args.kind, args.action, args.genres or (), progress=args.progress, title=args.title)
    except ValueError as exc:
        logger.error(f"Rejected interaction: {exc}")
        return
    tracker.save(store)
    logger.info(f"Tracked {event.action.value} on {event.kind.value}/{event.item_id}")


def cmd_history(args: argparse.Namespace) -> None:
    """Show watch history, newest first."""
    _, tracker = _load(args)
    entries = tracker.history.entries[:args.limit]
    if not entries:
        logger.info("No watch history")
        return

    logger.info(f"\nWatch history for {tracker.user} ({len(tracker.history)} entries):")
    for entry in entries:
        episode = ""
        if entry.season_number and entry.episode_number:
            episode = f" S{entry.season_number}E{entry.episode_number}"
        logger.info(
            f"  {entry.watched_at:%Y-%m-%d %H:%M}  {entry.kind.value}/{entry.item_id}{episode}  "
            f"{entry.progress:.0f}%"
        )


def cmd_history_add(args: argparse.Namespace) -> None:
    store, tracker = _load(args)
    try:
        entry = tracker.add_to_history(
            args.id,
            args.kind,
            args.progress,
            args.genres or (),
            episode_id=args.episode,
            season_number=args.season,
            episode_number=args.episode_number,
            title=args.title,
        )
    except ValueError as exc:
        logger.error(f"Rejected history entry: {exc}")
        return
    tracker.save(store)
    logger.info(f"Recorded {entry.kind.value}/{entry.item_id} at {entry.progress:.0f}%")


def cmd_history_clear(args: argparse.Namespace) -> None:
    store, tracker = _load(args)
    tracker.clear_history()
    tracker.save(store)


def cmd_watchlist_add(args: argparse.Namespace) -> None:
    store, tracker = _load(args)
    if tracker.add_to_watchlist(args.id, args.kind, args.genres or ()):
        tracker.save(store)
        logger.info(f"Added {args.kind}/{args.id} to watchlist")
    else:
        logger.info(f"{args.kind}/{args.id} is already on the watchlist")


def cmd_watchlist_remove(args: argparse.Namespace) -> None:
    store, tracker = _load(args)
    if tracker.remove_from_watchlist(args.id, args.kind):
        tracker.save(store)
        logger.info(f"Removed {args.kind}/{args.id} from watchlist")
    else:
        logger.info(f"{args.kind}/{args.id} is not on the watchlist")


def cmd_profile(args: argparse.Namespace) -> None:
    """Show the derived preference profile."""
    _, tracker = _load(args)
    prefs = tracker.preferences

    logger.info(f"\nProfile for {tracker.user}")
    logger.info(f"  Interactions: {len(tracker.interactions)}, history: {len(tracker.history)}, watchlist: {len(tracker.watchlist)}")
    logger.info(f"  Content balance: {prefs.content_type_balance} (0 = movies, 100 = shows)")
    logger.info(f"  Average completion: {prefs.avg_completion_rate}%")

    if prefs.has_affinity_data:
        logger.info("\nTop genres:")
        for genre_id in prefs.top_genres(10):
            logger.info(f"  {_genre_label(genre_id)}: {prefs.affinity(genre_id):.0f}")

    if prefs.recently_completed:
        logger.info(f"\nRecently completed: {len(prefs.recently_completed)}")
        for done in prefs.recently_completed[:5]:
            genres = ", ".join(_genre_label(g) for g in done.genre_ids)
            logger.info(f"  {done.kind.value}/{done.item_id} ({genres})")


def _build_composer(catalog: TMDBCatalog, settings: SettingsStore, seed: int | None) -> FeedComposer:
    return FeedComposer(
        CandidateAggregator(catalog, timeout=PROVIDER_TIMEOUT),
        settings,
        rng=np.random.default_rng(seed),
    )


async def _compose_feed(tracker: ActivityTracker, settings: SettingsStore, seed: int | None) -> Feed:
    async with TMDBCatalog(TMDB_API_KEY) as catalog:
        composer = _build_composer(catalog, settings, seed)
        return await composer.compose(
            tracker.preferences,
            tracker.interactions.events,
            WatchHistory(tracker.history.entries),
        )


def _print_feed(feed: Feed, limit: int) -> None:
    if feed.hero:
        pinned = " [pinned]" if feed.hero.pinned else ""
        logger.info(f"\nHero: {feed.hero.item.title} ({feed.hero.kind.value}/{feed.hero.item.id}){pinned}")

    if feed.continue_watching:
        logger.info("\nContinue Watching")
        for entry in feed.continue_watching[:limit]:
            logger.info(f"  {entry.kind.value}/{entry.item_id}  {entry.progress:.0f}%")

    for section in feed.sections:
        logger.info(f"\n{section.title}")
        for entry in section.entries[:limit]:
            reason = entry.reasons[0] if entry.reasons else ""
            logger.info(f"  {entry.rank:2d}. {entry.item.title} ({entry.item.kind.value}) {entry.score}% Match  {reason}")


def cmd_feed(args: argparse.Namespace) -> None:
    """Compose and print the personalized feed."""
    store, tracker = _load(args)
    if not TMDB_API_KEY:
        logger.error("TMDB_API_KEY is not set")
        return
    feed = asyncio.run(_compose_feed(tracker, SettingsStore(store), args.seed))
    if not feed.sections and not feed.hero:
        logger.info("Nothing to show yet")
        return
    _print_feed(feed, args.limit)


def cmd_hero(args: argparse.Namespace) -> None:
    store, tracker = _load(args)
    if not TMDB_API_KEY:
        logger.error("TMDB_API_KEY is not set")
        return

    async def pick():
        async with TMDBCatalog(TMDB_API_KEY) as catalog:
            composer = _build_composer(catalog, SettingsStore(store), args.seed)
            return await composer.smart_hero(tracker.preferences, WatchHistory(tracker.history.entries))

    hero = asyncio.run(pick())
    if hero is None:
        logger.info("No hero available")
        return
    pinned = " [pinned]" if hero.pinned else ""
    logger.info(f"{hero.item.title} ({hero.kind.value}/{hero.item.id}){pinned}")


def cmd_pin(args: argparse.Namespace) -> None:
    SettingsStore(SQLiteStore()).pin_featured(args.id, args.kind)


def cmd_unpin(args: argparse.Namespace) -> None:
    SettingsStore(SQLiteStore()).clear_featured()


def _add_item_args(parser: argparse.ArgumentParser, genres: bool = True) -> None:
    parser.add_argument("id", type=int, help="TMDB id")
    parser.add_argument("kind", choices=[k.value for k in MediaKind], help="Media kind")
    if genres:
        parser.add_argument("--genres", type=int, nargs="+", help="TMDB genre ids")


def main():
    parser = argparse.ArgumentParser(description="Muvi Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--user", default=DEFAULT_USER, help="User whose activity to use")
    subparsers = parser.add_subparsers(dest="command", required=True)

    track_parser = subparsers.add_parser("track", help="Record an interaction")
    _add_item_args(track_parser)
    track_parser.add_argument("action", choices=[a.value for a in Action], help="Interaction type")
    track_parser.add_argument("--progress", type=float, help="Progress 0-100")
    track_parser.add_argument("--title", help="Title (seeds 'Because You Watched' on complete)")
    track_parser.set_defaults(func=cmd_track)

    history_parser = subparsers.add_parser("history", help="Show watch history")
    history_parser.add_argument("--limit", type=int, default=20, help="Entries to show")
    history_parser.set_defaults(func=cmd_history)

    history_add_parser = subparsers.add_parser("history-add", help="Record watch progress")
    _add_item_args(history_add_parser)
    history_add_parser.add_argument("progress", type=float, help="Progress 0-100")
    history_add_parser.add_argument("--episode", type=int, help="Episode id")
    history_add_parser.add_argument("--season", type=int, help="Season number")
    history_add_parser.add_argument("--episode-number", type=int, help="Episode number within the season")
    history_add_parser.add_argument("--title", help="Title")
    history_add_parser.set_defaults(func=cmd_history_add)

    history_clear_parser = subparsers.add_parser("history-clear", help="Delete the whole watch history")
    history_clear_parser.set_defaults(func=cmd_history_clear)

    watchlist_add_parser = subparsers.add_parser("watchlist-add", help="Add to watchlist")
    _add_item_args(watchlist_add_parser)
    watchlist_add_parser.set_defaults(func=cmd_watchlist_add)

    watchlist_remove_parser = subparsers.add_parser("watchlist-remove", help="Remove from watchlist")
    _add_item_args(watchlist_remove_parser, genres=False)
    watchlist_remove_parser.set_defaults(func=cmd_watchlist_remove)

    profile_parser = subparsers.add_parser("profile", help="Show derived preferences")
    profile_parser.set_defaults(func=cmd_profile)

    feed_parser = subparsers.add_parser("feed", help="Compose the personalized feed")
    feed_parser.add_argument("--limit", type=int, default=10, help="Entries to show per section")
    feed_parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    feed_parser.set_defaults(func=cmd_feed)

    hero_parser = subparsers.add_parser("hero", help="Pick the hero item")
    hero_parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    hero_parser.set_defaults(func=cmd_hero)

    pin_parser = subparsers.add_parser("pin", help="Pin an item to the hero slot")
    pin_parser.add_argument("id", type=int, help="TMDB id")
    pin_parser.add_argument("--kind", choices=[k.value for k in MediaKind], help="Media kind (tried movie, then tv, when omitted)")
    pin_parser.set_defaults(func=cmd_pin)

    unpin_parser = subparsers.add_parser("unpin", help="Clear the pinned hero item")
    unpin_parser.set_defaults(func=cmd_unpin)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
