#!/usr/bin/env python3
"""
Interest classification and daily buffer tool.

Usage:
    python scripts/daily_interests.py classify --rules rules.yaml --url https://www.example.com/golf --title "Golf"
    python scripts/daily_interests.py classify --rules rules.yaml --html page.html --url https://example.com/
    python scripts/daily_interests.py process visits.json --rules rules.yaml
    python scripts/daily_interests.py ingest batch.json
    python scripts/daily_interests.py flush            # closed days only
    python scripts/daily_interests.py flush --force    # everything
    python scripts/daily_interests.py status
    python scripts/daily_interests.py clear

Any subcommand accepts --run-config FILE (JSON/YAML) whose keys fill options
not given on the command line, e.g. {"rules": "rules.yaml", "namespace": "58-cat"}.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from interests import (
    BufferConfig,
    DailyInterestsBuffer,
    Document,
    InterestsWorker,
    JsonFileBackend,
    StateStore,
    WorkerClient,
    WorkerConfig,
)
from interests.config import apply_run_config, load_data_file, load_run_config
from interests.pipeline import process_visits


logger = logging.getLogger("interests")


def _worker_config(args: argparse.Namespace) -> WorkerConfig:
    return WorkerConfig(
        namespace=args.namespace,
        region_code=args.region,
        interests_data=load_data_file(args.rules) if args.rules else None,
        classifier_model=load_data_file(args.model) if args.model else None,
        url_stopwords=load_data_file(args.stopwords) if args.stopwords else None,
    )


def _bootstrapped_worker(args: argparse.Namespace) -> InterestsWorker:
    worker = InterestsWorker()
    ack = worker.handle({"command": "bootstrap", "payload": _worker_config(args).to_bootstrap_message()})
    if ack is None:
        raise RuntimeError("worker bootstrap failed (see log)")
    return worker


def _buffer(args: argparse.Namespace) -> DailyInterestsBuffer:
    config = BufferConfig()
    if args.state:
        config.state_path = Path(args.state)
    return DailyInterestsBuffer(StateStore(JsonFileBackend(config.state_path)), config=config)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def cmd_classify(args: argparse.Namespace) -> int:
    worker = _bootstrapped_worker(args)
    if args.html:
        doc = Document.from_html(args.url, Path(args.html).read_text(encoding="utf-8", errors="ignore"))
    else:
        doc = Document.from_url(args.url, args.title or "")
    payload = {
        "host": doc.host,
        "baseDomain": doc.base_domain,
        "path": doc.path,
        "title": doc.title,
        "url": doc.url,
    }
    response = worker.handle({"command": "getInterestsForDocument", "payload": payload})
    if response is None:
        print("Classification failed (see log)", file=sys.stderr)
        return 1
    _print_json(response)
    return 0


def cmd_process(args: argparse.Namespace) -> int:
    visits = json.loads(Path(args.visits).read_text(encoding="utf-8"))
    worker = _bootstrapped_worker(args)
    buffer = _buffer(args)

    async def _run() -> int:
        async with WorkerClient(worker, timeout=buffer.config.request_timeout) as client:
            return await process_visits(client, buffer, visits)

    committed = asyncio.run(_run())
    print(f"Ingested {committed} of {len(visits)} visits")
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    batch = json.loads(Path(args.batch).read_text(encoding="utf-8"))
    if not isinstance(batch, list):
        print("Batch file must contain a list of entries", file=sys.stderr)
        return 1
    committed = _buffer(args).ingest(batch)
    print(f"Ingested {committed}/{len(batch)} entries")
    return 0 if committed == len(batch) else 2


def cmd_flush(args: argparse.Namespace) -> int:
    buffer = _buffer(args)
    if args.force:
        results = buffer.drain()
    elif buffer.emit_ready():
        results = buffer.flush()
    else:
        results = {}
    _print_json(results)
    if buffer.days_from_today is not None:
        logger.info("Newest emitted day is %d day(s) old", buffer.days_from_today)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    buffer = _buffer(args)
    domains = buffer.get_domains()
    _print_json({
        "state_path": str(buffer.config.state_path),
        "days": buffer.day_keys(),
        "hosts": len(domains["all"]),
        "interests": sorted(domains["byInterest"]),
    })
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    _buffer(args).clear()
    print("Day buckets cleared")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Classify visits into interests and aggregate them by day")
    parser.add_argument("--run-config", help="Path to JSON/YAML run config (overrides defaults)")
    parser.add_argument("--state", help="Buffer state file (default: data/interests_state.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = parser.add_subparsers(dest="command", required=True)

    def _classifier_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--rules", help="DFR rule table (JSON/YAML)")
        p.add_argument("--model", help="Naive Bayes model (JSON/YAML)")
        p.add_argument("--stopwords", help="URL stopword list (JSON/YAML)")
        p.add_argument("--namespace", help="Worker namespace")
        p.add_argument("--region", help="Worker region code")

    p = sub.add_parser("classify", help="Classify a single document")
    _classifier_args(p)
    p.add_argument("--url", required=True, help="Document URL")
    p.add_argument("--title", help="Document title")
    p.add_argument("--html", help="Archived HTML file to take the title from")
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("process", help="Classify a visits file and ingest the results")
    _classifier_args(p)
    p.add_argument("visits", help="JSON list of visit records")
    p.set_defaults(func=cmd_process)

    p = sub.add_parser("ingest", help="Ingest a batch file into the buffer")
    p.add_argument("batch", help="JSON list of batch entries")
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser("flush", help="Emit closed days (or everything with --force)")
    p.add_argument("--force", action="store_true", help="Drain every day, including the newest")
    p.set_defaults(func=cmd_flush)

    p = sub.add_parser("status", help="Show resident days and domain counts")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("clear", help="Discard all day buckets")
    p.set_defaults(func=cmd_clear)

    return parser


def _provided_flags(argv: list[str]) -> set[str]:
    return {a[2:].split("=")[0].replace("-", "_") for a in argv if a.startswith("--")}


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.run_config:
            args = apply_run_config(args, load_run_config(args.run_config), _provided_flags(argv))
        return args.func(args)
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
