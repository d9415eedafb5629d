"""
Command line entry point

    python -m telepocket.main add "note text" --url https://...
    python -m telepocket.main classify --size 5
    python -m telepocket.main suggest --query "japanese grammar"
"""
import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime
from typing import List, Optional

from telepocket.config import Config
from telepocket.constants import CATEGORY_EMOJI, ItemKind, Paths
from telepocket.engine import ClassificationEngine
from telepocket.exceptions import ConfigError
from telepocket.models import Item, PendingAssignment
from telepocket.repository import JsonItemRepository

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="telepocket", description="Note classification engine")
    parser.add_argument("--config", default=Paths.DEFAULT_CONFIG_PATH, help="YAML config path")
    parser.add_argument("--verbose", action="store_true", help="debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="save a note and classify it")
    add.add_argument("text")
    add.add_argument("--url", action="append", default=[], help="attached URL (repeatable)")

    classify = commands.add_parser("classify", help="classify a batch of unlabeled notes")
    classify.add_argument("--size", type=int, default=None)
    classify.add_argument("--actor", default="cli")

    suggest = commands.add_parser("suggest", help="one suggestion per category")
    suggest.add_argument("--days", type=int, default=None)
    suggest.add_argument("--query", default=None)

    return parser


async def run_add(engine: ClassificationEngine, repository: JsonItemRepository, text: str, urls: List[str]):
    item = Item(
        item_id=uuid.uuid4().hex,
        kind=ItemKind.NOTE,
        content=text,
        urls=urls,
        created_at=datetime.now()
    )
    await repository.add_item(item)
    print(f"✅ Saved {item.item_id}")

    result = await engine.classify_live(item.item_id, text, urls)
    for score in result.auto_confirmed:
        print(f"  {CATEGORY_EMOJI.get(score.label, '🏷️')} {score.label} ({score.score})")
    for score in result.suggested:
        print(f"  ❔ {score.label}? ({score.score})")
    if result.skipped_reason:
        print(f"  skipped: {result.skipped_reason}")


async def run_classify(engine: ClassificationEngine, actor: str, size: Optional[int]):
    def show_pending(entry: PendingAssignment):
        options = ", ".join(f"{s.label}={s.score}" for s in entry.candidate_scores) or "no candidates"
        print(f"  ⏳ {entry.raw_item.preview!r}: {options}")

    session = await engine.start_batch(actor, size, on_pending=show_pending)
    summary = await session.wait_closed()
    print(
        f"🏁 {summary.reason}: {summary.auto_confirmed_count} auto-confirmed, "
        f"{summary.manually_assigned_count} chosen, {summary.auto_assigned_count} auto-assigned, "
        f"{summary.skipped_count} skipped, {summary.failed_count} failed"
    )


async def run_suggest(engine: ClassificationEngine, days: Optional[int], query: Optional[str]):
    selected = await engine.get_suggestions(days_back=days, query=query)
    for category, candidate in selected.items():
        if candidate is None:
            continue
        print(f"{CATEGORY_EMOJI.get(category, '')} {category}: {candidate.content[:80]}")


async def run(args) -> int:
    config = Config(args.config)
    config.validate()

    repository = JsonItemRepository(config.storage_path)
    engine = ClassificationEngine.from_config(config, repository=repository)

    try:
        if args.command == "add":
            await run_add(engine, repository, args.text, args.url)
        elif args.command == "classify":
            await run_classify(engine, args.actor, args.size)
        elif args.command == "suggest":
            await run_suggest(engine, args.days, args.query)
    finally:
        await engine.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        return asyncio.run(run(args))
    except (FileNotFoundError, ValueError, ConfigError) as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
