"""Command line entry point for bkmr."""
import argparse
import asyncio
import logging
import subprocess
import sys
from typing import List, Optional, Sequence

from bkmr import actions, picker
from bkmr.config import get_config
from bkmr.enrichment import schedule_enrichment
from bkmr.models import Bookmark, QueryError, StoreError
from bkmr.search import search
from bkmr.session import Action, SelectorSession
from bkmr.store import BookmarkStore

logger = logging.getLogger(__name__)

# Third-party loggers kept at INFO even in debug mode
QUIET_LOGGERS = ("asyncio", "httpx", "httpcore", "trafilatura", "htmldate")


def setup_logging(verbosity: int) -> None:
    """Log to stderr: WARNING by default, INFO with -d, DEBUG with -dd."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def parse_ids(raw: str) -> List[int]:
    """Parse a comma separated list of ids.

    Raises:
        ValueError: If an entry is not a number
    """
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValueError(f"Invalid input, only numbers allowed: {raw}")


def format_bookmarks(bookmarks: Sequence[Bookmark]) -> str:
    """Numbered listing: title and id, then URL, description and tags."""
    width = len(str(len(bookmarks)))
    pad = " " * width
    lines = []
    for i, bm in enumerate(bookmarks, start=1):
        lines.append(f"{i:>{width}}. {bm.title} [{bm.id}]")
        lines.append(f"{pad}  {bm.url}")
        if bm.description:
            lines.append(f"{pad}  {bm.description}")
        if bm.tags:
            lines.append(f"{pad}  {' '.join(bm.sorted_tags)}")
        lines.append("")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bkmr", description="A bookmark manager for the terminal")
    parser.add_argument("-d", "--debug", action="count", default=0, help="-d info, -dd debug output")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="search bookmarks (interactive by default)")
    p.add_argument("query", nargs="*", help="tags, -tags and free text")
    p.add_argument("--np", dest="non_interactive", action="store_true", help="no prompt, print results")
    p.add_argument("--limit", type=int, default=None, help="maximum results printed with --np")
    order = p.add_mutually_exclusive_group()
    order.add_argument("-o", "--descending", action="store_true", help="with --np, order by last update, newest first")
    order.add_argument("-O", "--ascending", action="store_true", help="with --np, order by last update, oldest first")

    p = sub.add_parser("add", help="add a bookmark")
    p.add_argument("url")
    p.add_argument("tags", nargs="?", default=None, help="comma separated tags")
    p.add_argument("--title", default="")
    p.add_argument("-D", "--description", default="")
    p.add_argument("--no-web", action="store_true", help="do not fetch title/description")

    for name, help_text in (
        ("open", "open bookmarks"),
        ("edit", "edit bookmarks"),
        ("delete", "delete bookmarks"),
        ("show", "show bookmarks"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("ids", help="comma separated ids, no blanks")

    p = sub.add_parser("update", help="add or remove tags of bookmarks")
    p.add_argument("ids", help="comma separated ids, no blanks")
    p.add_argument("-t", "--tags", default=None, help="add tags to taglist")
    p.add_argument("-n", "--ntags", default=None, help="remove tags from taglist")
    p.add_argument("-f", "--force", action="store_true", help="overwrite taglist with tags")

    p = sub.add_parser("tags", help="tag counts, or tags related to TAG")
    p.add_argument("tag", nargs="?", default=None)

    return parser


async def dispatch(store: BookmarkStore, action: Action, ids: Sequence[int]) -> None:
    """Carry out a picker action on the selected bookmarks."""
    if action is Action.OPEN:
        await actions.open_bookmarks(store, ids)
    elif action is Action.EDIT:
        await actions.edit_bookmarks(store, ids)
    elif action is Action.DELETE:
        deleted = await actions.delete_bookmarks(store, ids)
        print(f"Deleted {len(deleted)} bookmark(s)")
    elif action is Action.COPY:
        await actions.copy_urls(store, ids)


async def cmd_search(store: BookmarkStore, args) -> int:
    raw = " ".join(args.query)
    config = get_config()

    if args.non_interactive:
        results = await search(store, raw, config.ranking.weights())
        if args.descending or args.ascending:
            results = sorted(results, key=lambda r: r.bookmark.updated_at, reverse=args.descending)
        if args.limit is not None:
            results = results[:args.limit]
        print(format_bookmarks([r.bookmark for r in results]), end="")
        print(f"Found {len(results)} bookmarks")
        return 0

    session = await SelectorSession.from_store(store, weights=config.ranking.weights())
    selection = await picker.run_picker(session, config.picker.max_rows, initial_query=raw)
    if selection.aborted or not selection.ids:
        return 0
    await dispatch(store, selection.action, selection.ids)
    return 0


async def cmd_add(store: BookmarkStore, args) -> int:
    bookmark = await store.insert(
        args.url,
        title=args.title,
        description=args.description,
        tags=args.tags,
    )
    print(f"Added bookmark: {bookmark.id}")

    if not args.no_web:
        task = schedule_enrichment(store, bookmark)
        if task is not None:
            enriched = await task
            if enriched is not None:
                bookmark = enriched
            else:
                print("Cannot enrich URL data from web.", file=sys.stderr)

    print(format_bookmarks([bookmark]), end="")
    return 0


async def cmd_ids(store: BookmarkStore, args) -> int:
    ids = parse_ids(args.ids)
    if args.command == "show":
        print(format_bookmarks([await store.get(i) for i in ids]), end="")
    else:
        await dispatch(store, Action(args.command), ids)
    return 0


async def cmd_update(store: BookmarkStore, args) -> int:
    ids = parse_ids(args.ids)
    updated = await actions.update_tags(store, ids, add=args.tags, remove=args.ntags, force=args.force)
    print(format_bookmarks(updated), end="")
    return 0


async def cmd_tags(store: BookmarkStore, args) -> int:
    counts = await store.related_tags(args.tag) if args.tag else await store.tag_counts()
    for tag, n in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        print(f"{n}: {tag}")
    return 0


COMMANDS = {
    "search": cmd_search,
    "add": cmd_add,
    "open": cmd_ids,
    "edit": cmd_ids,
    "delete": cmd_ids,
    "show": cmd_ids,
    "update": cmd_update,
    "tags": cmd_tags,
}


async def main(argv: Optional[Sequence[str]] = None, store: Optional[BookmarkStore] = None) -> int:
    """Run one bkmr command.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    own_store = store is None
    if own_store:
        store = BookmarkStore()
        await store.initialize()

    try:
        return await COMMANDS[args.command](store, args)
    except (QueryError, StoreError, ValueError, subprocess.SubprocessError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if own_store:
            await store.close()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
