"""
FILE DESCRIPTION: Command line entry point.
KEY FUNCTIONS/CLASSES: build_service, main

    python -m pagewatch serve [--host H] [--port P]
    python -m pagewatch clone URL
    python -m pagewatch compare REFERENCE_URL CURRENT_URL
    python -m pagewatch compare --stored REFERENCE_PNG CURRENT_URL
    python -m pagewatch watch URL [URL ...] [--interval SECONDS]
"""

import argparse
import json
import sys
import threading
from urllib.parse import urlparse

from pagewatch.alerts import AlertDispatcher, EmailSink, EndpointRegistry, SlackSink, WebhookSink
from pagewatch.core import POLL_INTERVAL, logger
from pagewatch.errors import PageWatchError
from pagewatch.monitor import MonitorScheduler, MonitorService
from pagewatch.rendering import PlaywrightPageFetcher, build_fetcher
from pagewatch.replication import ReplicationEngine
from pagewatch.snapshot import build_snapshot_store
from pagewatch.visual import VisualDiffer


def build_service(fetcher=None) -> MonitorService:
    fetcher = fetcher or build_fetcher()
    registry = EndpointRegistry()
    dispatcher = AlertDispatcher([WebhookSink(registry), EmailSink(), SlackSink()])
    return MonitorService(
        fetcher=fetcher,
        snapshots=build_snapshot_store(),
        dispatcher=dispatcher,
        registry=registry,
    )


def _print_json(data):
    print(json.dumps(data, indent=2))


def cmd_serve(args):
    from pagewatch.app import create_app

    fetcher = build_fetcher()
    service = build_service(fetcher)
    app = create_app(
        service,
        replicator=ReplicationEngine(fetcher),
        # Screenshots always need the rendered backend
        differ=VisualDiffer(PlaywrightPageFetcher()),
        registry=service.registry,
    )

    stop = threading.Event()
    scheduler = MonitorScheduler(service)
    worker = threading.Thread(target=scheduler.run_forever, args=(stop,), name="Scheduler", daemon=True)
    worker.start()
    try:
        app.run(host=args.host, port=args.port)
    finally:
        stop.set()


def cmd_clone(args):
    bundle = ReplicationEngine(build_fetcher()).clone(args.url)
    _print_json(bundle.to_dict())


def cmd_compare(args):
    differ = VisualDiffer(PlaywrightPageFetcher())
    if args.stored:
        comparison = differ.compare_to_reference(args.reference, args.current)
    else:
        comparison = differ.compare(args.reference, args.current)
    _print_json(comparison.to_dict())


def cmd_watch(args):
    service = build_service()
    for url in args.urls:
        host = urlparse(url).netloc or url
        service.register_monitor({"id": host, "url": url, "schedule": "hourly"})

    stop = threading.Event()
    try:
        while not stop.is_set():
            stop.wait(args.interval)
            for target in service.list_monitors():
                try:
                    result = service.check_for_changes(target.target_id)
                except PageWatchError as e:
                    logger.error(f"[WATCH] {target.target_id}: {e}")
                    continue
                if result.changed:
                    _print_json(result.to_dict())
    except KeyboardInterrupt:
        logger.info("[WATCH] Interrupted, exiting")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="pagewatch", description="Page change monitoring CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and the monitor scheduler")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.set_defaults(func=cmd_serve)

    clone = sub.add_parser("clone", help="Clone a page into an offline static bundle")
    clone.add_argument("url")
    clone.set_defaults(func=cmd_clone)

    compare = sub.add_parser("compare", help="Visually diff two pages")
    compare.add_argument("reference", help="Reference URL, or a stored screenshot path with --stored")
    compare.add_argument("current")
    compare.add_argument("--stored", action="store_true", help="Treat REFERENCE as a previously saved PNG")
    compare.set_defaults(func=cmd_compare)

    watch = sub.add_parser("watch", help="Poll pages and print detected changes")
    watch.add_argument("urls", nargs="+")
    watch.add_argument("--interval", type=float, default=POLL_INTERVAL, help="Seconds between checks")
    watch.set_defaults(func=cmd_watch)

    args = parser.parse_args(argv)
    try:
        args.func(args)
    except PageWatchError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
