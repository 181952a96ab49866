import argparse
import asyncio
import sys
from pathlib import Path

from .env import load_env

from . import __version__
from .batch import run_batch
from .cleanup import cleanup_stale_entries
from .config import Settings, load_settings
from .logger import get_logger
from .normalize import primary_term
from .resolver import Resolver
from .schema import RATING_KINDS, Candidate, Resolution
from .scrapers.fide import make_fetcher
from .storage import MatchStore, MemoryKeyValueStore, SqlKeyValueStore, StorageError
from .tabular import SlicingPolicy, format_rows, parse


def describe_candidate(c: Candidate) -> str:
    def rating(value: str) -> str:
        return value or "Unrated"

    return (
        f"{c.name} ({c.federation}) [{c.fide_id or 'no id'}]\n"
        f"    Born: {c.birth_year}, Title: {c.title or 'None'}\n"
        f"    Std: {rating(c.standard)}, Rpd: {rating(c.rapid)}, Blz: {rating(c.blitz)}"
    )


def describe_resolution(resolution: Resolution) -> str:
    if not resolution.candidates:
        return f"No match ({resolution.label})"
    lines = []
    if not resolution.accurate:
        lines.append(f"Multiple Results ({resolution.label})")
    else:
        lines.append(f"Match ({resolution.label})")
    lines.extend(describe_candidate(c) for c in resolution.candidates)
    return "\n".join(lines)


def open_store(db: str, no_cache: bool = False) -> MatchStore:
    if no_cache:
        return MatchStore(MemoryKeyValueStore())
    try:
        return MatchStore(SqlKeyValueStore(Path(db)))
    except StorageError as e:
        # Degrade to an in-memory store rather than refusing to run
        get_logger().warning("Falling back to in-memory store", error=str(e))
        return MatchStore(MemoryKeyValueStore())


def build_resolver(settings: Settings, store: MatchStore) -> Resolver:
    return Resolver(store=store, fetch=make_fetcher(settings), home_federation=settings.home_federation)


def _term_from_args(args: argparse.Namespace) -> str:
    if args.term:
        return args.term
    if args.first and args.last:
        return primary_term(args.last, args.first)
    raise SystemExit("Provide --term or both --first and --last.")


def cmd_run(args: argparse.Namespace, settings: Settings) -> None:
    if args.input == "-":
        text = sys.stdin.read()
    else:
        input_path = Path(args.input)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        text = input_path.read_text(encoding="utf-8")

    headers, rows = parse(text, SlicingPolicy(args.policy))
    if not headers:
        raise SystemExit("Input is empty.")

    store = open_store(args.db, args.no_cache)
    store.purge_stale()
    resolver = build_resolver(settings, store)

    def on_progress(index: int, resolution: Resolution) -> None:
        row = rows[index]
        best = resolution.best
        found = f"{best.name} ({best.federation})" if best else "-"
        flag = "" if resolution.accurate or not resolution.candidates else " [multiple]"
        print(f"[{resolution.label}] {row.index}: {row.search_term or '(no name)'} -> {found}{flag}", file=sys.stderr)

    concurrency = args.concurrency or settings.concurrency
    asyncio.run(run_batch(rows, resolver, concurrency=concurrency, force_refresh=args.refresh, on_progress=on_progress))

    output = format_rows(rows, headers, rating_kind=args.rating, align=args.align)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output + "\n", encoding="utf-8")
        print(f"Wrote {len(rows)} rows to {out_path}", file=sys.stderr)
    else:
        print(output)
    get_logger().log_metrics_summary()


def cmd_resolve(args: argparse.Namespace, settings: Settings) -> None:
    store = open_store(args.db, args.no_cache)
    resolver = build_resolver(settings, store)
    resolution = asyncio.run(resolver.resolve(args.last, args.first, force_refresh=args.refresh))
    print(f"Search: {primary_term(args.last, args.first)}")
    print(describe_resolution(resolution))


def cmd_deny(args: argparse.Namespace, settings: Settings) -> None:
    term = _term_from_args(args)
    store = open_store(args.db)
    if not store.denylist_add(term, args.id):
        raise SystemExit(f"Could not denylist {args.id} for '{term}'.")
    print(f"Denylisted {args.id} for '{term}'")


def cmd_allow(args: argparse.Namespace, settings: Settings) -> None:
    term = _term_from_args(args)
    store = open_store(args.db)
    if not store.denylist_remove(term, args.id):
        raise SystemExit(f"Could not remove {args.id} from the denylist for '{term}'.")
    print(f"Removed {args.id} from the denylist for '{term}'")


def cmd_denied(args: argparse.Namespace, settings: Settings) -> None:
    term = _term_from_args(args)
    ids = sorted(open_store(args.db).denylist_list(term))
    if not ids:
        print(f"No denylisted candidates for '{term}'.")
        return
    print(f"Denylisted candidates for '{term}':")
    for i in ids:
        print(f" - {i}")


def cmd_purge(args: argparse.Namespace, settings: Settings) -> None:
    before, after = cleanup_stale_entries(Path(args.db))
    print(f"Done. cached-before={before} removed={before - after} remaining={after}")


def _add_term_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--term", help="Search term exactly as resolved, e.g. \"Ram, Lana\"")
    p.add_argument("--first", help="First name (used with --last instead of --term)")
    p.add_argument("--last", help="Last name (used with --first instead of --term)")


def main(argv=None):
    # Load .env if present (FIDEMATCH_* settings)
    load_env()
    try:
        settings = load_settings()
    except ValueError as e:
        raise SystemExit(str(e))
    get_logger(level=settings.log_level, log_dir=settings.log_dir)

    parser = argparse.ArgumentParser(prog="fidematch", description="Match roster names against FIDE ratings")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", default=str(settings.db_path), help=f"Path to SQLite store (default: {settings.db_path})")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Resolve every row of a tab-separated roster")
    run.add_argument("--input", required=True, help="Tab-separated roster file, or - for stdin")
    run.add_argument("--output", help="Write resolved text here instead of stdout")
    run.add_argument("--concurrency", type=int, help=f"Rows resolved at once (default: {settings.concurrency})")
    run.add_argument("--rating", choices=list(RATING_KINDS), default="standard", help="Rating written to the FRtg column")
    run.add_argument("--align", action="store_true", help="Pad columns with spaces instead of tabs")
    run.add_argument("--refresh", action="store_true", help="Ignore cached results")
    run.add_argument("--no-cache", action="store_true", help="Use a throwaway in-memory store")
    run.add_argument("--policy", choices=[p.value for p in SlicingPolicy], default=SlicingPolicy.ANCHORED.value,
                     help="Column slicing policy for rows with extra tabs (default: anchored)")
    run.set_defaults(func=cmd_run)

    res = subparsers.add_parser("resolve", help="Resolve a single name pair")
    res.add_argument("--first", required=True, help="First name")
    res.add_argument("--last", required=True, help="Last name")
    res.add_argument("--refresh", action="store_true", help="Ignore cached results")
    res.add_argument("--no-cache", action="store_true", help="Use a throwaway in-memory store")
    res.set_defaults(func=cmd_resolve)

    deny = subparsers.add_parser("deny", help="Mark a candidate as a wrong match for a search term")
    _add_term_args(deny)
    deny.add_argument("--id", required=True, help="FIDE id of the rejected candidate")
    deny.set_defaults(func=cmd_deny)

    allow = subparsers.add_parser("allow", help="Remove a candidate from a search term's denylist")
    _add_term_args(allow)
    allow.add_argument("--id", required=True, help="FIDE id to allow again")
    allow.set_defaults(func=cmd_allow)

    denied = subparsers.add_parser("denied", help="List denylisted candidates for a search term")
    _add_term_args(denied)
    denied.set_defaults(func=cmd_denied)

    purge = subparsers.add_parser("purge", help="Remove cached results from previous months")
    purge.set_defaults(func=cmd_purge)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        if getattr(args, "concurrency", None) is not None and args.concurrency < 1:
            raise SystemExit("--concurrency must be at least 1.")
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
