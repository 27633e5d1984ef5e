"""Command line interface for specstate.

Usage:
    python -m specstate serve [--host HOST] [--port PORT]
    python -m specstate init-db
    python -m specstate export WORKSPACE [--include-history] [--output FILE]
    python -m specstate import WORKSPACE FILE
    python -m specstate status WORKSPACE

``export``, ``import`` and ``status`` talk to the store at
``SPECSTATE_STORE_URL``; pass ``--local`` to use the database directly.
"""

import argparse
import asyncio
import inspect
import json
import logging
import sys

from specstate.core.config import get_settings
from specstate.core.entities import EntityKind
from specstate.core.errors import StateSyncError
from specstate.core.logger import setup_from_settings
from specstate.core.workflow.states import PHASE_ORDER

logger = logging.getLogger("specstate.cli")


def _make_store(args):
    settings = get_settings()
    if args.local:
        from specstate.client.local import LocalStateStoreClient
        from specstate.db.session import SessionLocal

        return LocalStateStoreClient(SessionLocal)

    from specstate.client.http import HttpStateStoreClient

    return HttpStateStoreClient(settings.store_url, timeout=settings.request_timeout)


async def _export(args) -> int:
    async with _make_store(args) as store:
        document = await store.export_workspace(args.workspace, include_history=args.include_history)
    text = json.dumps(document, indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(text + "\n")
        print(f"Exported workspace {args.workspace} to {args.output}")
    else:
        print(text)
    return 0


async def _import(args) -> int:
    with open(args.file) as f:
        document = json.load(f)
    async with _make_store(args) as store:
        result = await store.import_workspace(args.workspace, document)
    imported = result.get("imported", {})
    print(
        f"Imported into {args.workspace}: "
        + ", ".join(f"{count} {name}" for name, count in imported.items())
    )
    for failure in result.get("failed", []):
        print(f"  failed {failure.get('kind')} {failure.get('business_id')}: {failure.get('error')}")
    return 0 if result.get("success") else 1


async def _status(args) -> int:
    from specstate.sync.service import WorkspaceStateService

    async with _make_store(args) as store:
        service = WorkspaceStateService.from_settings(store, args.workspace)
        snapshot = await service.fetch_workspace_state()
    requirements = service.aggregator.phase_categories

    print(f"Workspace: {snapshot.workspace_id}")
    for kind in EntityKind:
        entities = snapshot.entities(kind)
        approved = sum(1 for e in entities if e.is_approved)
        rejected = sum(1 for e in entities if e.is_rejected)
        print(f"  {kind.collection}: {len(entities)} total, {approved} approved, {rejected} rejected")

    print("Phases:")
    for phase in PHASE_ORDER:
        record = snapshot.phase_approval(phase)
        if record is not None and record.approved:
            line = f"  {phase.value}: approved at {record.approved_at.isoformat()}"
        else:
            line = f"  {phase.value}: not approved"
        required = requirements.get(phase) or []
        if required:
            line += f" (requires {', '.join(required)})"
        print(line)
    return 0


def _serve(args) -> int:
    import uvicorn

    uvicorn.run("specstate.api.main:app", host=args.host, port=args.port)
    return 0


def _init_db(args) -> int:
    from specstate.db.session import init_db

    init_db()
    print(f"Initialized database at {get_settings().database_url}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="specstate", description="Entity approval state store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=9082)
    serve.set_defaults(func=_serve)

    init_db = subparsers.add_parser("init-db", help="Create database tables")
    init_db.set_defaults(func=_init_db)

    export = subparsers.add_parser("export", help="Export a workspace as JSON")
    export.add_argument("workspace")
    export.add_argument("--include-history", action="store_true")
    export.add_argument("--output", "-o")
    export.set_defaults(func=_export)

    import_ = subparsers.add_parser("import", help="Import a workspace export")
    import_.add_argument("workspace")
    import_.add_argument("file")
    import_.set_defaults(func=_import)

    status = subparsers.add_parser("status", help="Show entity counts and phase approvals")
    status.add_argument("workspace")
    status.set_defaults(func=_status)

    for sub in (export, import_, status):
        sub.add_argument("--local", action="store_true", help="Use the database instead of the HTTP store")

    return parser


def main(argv=None) -> int:
    """Main entry point for the specstate CLI."""
    args = build_parser().parse_args(argv)
    setup_from_settings(get_settings())

    try:
        if inspect.iscoroutinefunction(args.func):
            return asyncio.run(args.func(args))
        return args.func(args)
    except StateSyncError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
