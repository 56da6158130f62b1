"""Management CLI for marketplace moderation.

Usage:
    python -m marketplace_console.cli list courses --status pending --search watercolor
    python -m marketplace_console.cli show courses 64f0c1
    python -m marketplace_console.cli act courses 64f0c1 reject --reason "missing video"
    python -m marketplace_console.cli delete products 650a9e --yes
    python -m marketplace_console.cli export payouts payouts.csv --status pending
    python -m marketplace_console.cli redirects

Configure with the API_BASE_URL and API_TOKEN environment variables or a .env file.
"""

import argparse
import asyncio
import logging
import sys

from marketplace_console.config import settings
from marketplace_console.errors import ConsoleError
from marketplace_console.resources import RESOURCES
from marketplace_console.schemas.common import ListQuery
from marketplace_console.schemas.entities import status_value
from marketplace_console.services.api import ApiClient
from marketplace_console.services.moderation import ModerationList
from marketplace_console.services.seo import SeoClient
from marketplace_console.utils.export import export_csv

logger = logging.getLogger(__name__)


def _title(entity) -> str:
    for attr in ("title", "name", "code", "email", "seller_name"):
        value = getattr(entity, attr, None)
        if value:
            return str(value)
    return ""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a whole number") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be 1 or more, got {number}")
    return number


def _query(args) -> ListQuery:
    data = {
        "search": getattr(args, "search", "") or "",
        "status": getattr(args, "status", "") or "",
        "sort": getattr(args, "sort", "") or "",
    }
    if getattr(args, "page", None) is not None:
        data["page"] = args.page
    if getattr(args, "limit", None) is not None:
        data["page_size"] = args.limit
    return ListQuery(**data)


def _confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes")


async def cmd_list(api: ApiClient, args) -> int:
    view = ModerationList(api, args.resource, query=_query(args))
    page = await view.refresh()
    if view.store.error is not None:
        raise view.store.error
    for item in page.items:
        print(f"  {item.id:<26} {status_value(getattr(item, 'status', '')) or '':<14} {_title(item)}")
    print(f"\nPage {page.page}/{max(page.total_pages, 1)} · {page.total_items} item(s)")
    for status, summary in view.store.summary.items():
        print(f"  {status}: {summary.count} ({summary.total:g})")
    return 0


async def cmd_show(api: ApiClient, args) -> int:
    view = ModerationList(api, args.resource)
    entity = await view.store.fetch_one(args.id)
    for key, value in entity.model_dump().items():
        print(f"  {key}: {status_value(value) if value is not None else ''}")
    print(f"\nAllowed: {', '.join(view.resource.workflow.allowed_actions(getattr(entity, 'status', None))) or '-'}")
    return 0


async def cmd_act(api: ApiClient, args) -> int:
    view = ModerationList(api, args.resource)
    current = await view.store.fetch_one(args.id)

    prepared = view.prepare(args.id, args.action, current=current)
    payload = {}
    if args.reason:
        payload[prepared.reason_field or "reason"] = args.reason
    if prepared.requires_confirmation and not _confirm(prepared.prompt, args.yes):
        prepared.cancel()
        print("Cancelled.")
        return 0

    result = await prepared.confirm(payload)
    if not result.ok:
        raise result.error
    status = status_value(getattr(result.entity, "status", None)) if result.entity else None
    print(f"{args.action}: {args.id}" + (f" -> {status}" if status else ""))
    return 0


async def cmd_delete(api: ApiClient, args) -> int:
    view = ModerationList(api, args.resource)
    prepared = view.prepare(args.id, "delete")
    if not _confirm(prepared.prompt, args.yes):
        prepared.cancel()
        print("Cancelled.")
        return 0
    result = await prepared.confirm()
    if not result.ok:
        raise result.error
    print(f"Deleted {args.id}")
    return 0


async def cmd_export(api: ApiClient, args) -> int:
    view = ModerationList(api, args.resource, query=_query(args))
    count = await export_csv(view.store, args.out)
    print(f"Wrote {count} row(s) to {args.out}")
    return 0


async def cmd_redirects(api: ApiClient, args) -> int:
    redirects = await SeoClient(api).list_redirects()
    for r in redirects:
        print(f"  {r.id:<16} {'301' if r.permanent else '302'}  {r.source} -> {r.destination}")
    print(f"\n{len(redirects)} redirect(s)")
    return 0


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "act": cmd_act,
    "delete": cmd_delete,
    "export": cmd_export,
    "redirects": cmd_redirects,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketplace-console", description=__doc__.splitlines()[0])
    parser.add_argument("--base-url", default=None, help="API origin (default: settings.api_base_url)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)
    resources = sorted(RESOURCES)

    def filters(p: argparse.ArgumentParser) -> None:
        p.add_argument("--status", default="")
        p.add_argument("--search", default="")
        p.add_argument("--sort", default="")

    p = sub.add_parser("list", help="show one page of a collection")
    p.add_argument("resource", choices=resources)
    filters(p)
    p.add_argument("--page", type=_positive_int, default=None)
    p.add_argument("--limit", type=_positive_int, default=None)

    p = sub.add_parser("show", help="show one entity and its allowed actions")
    p.add_argument("resource", choices=resources)
    p.add_argument("id")

    p = sub.add_parser("act", help="run a workflow action")
    p.add_argument("resource", choices=resources)
    p.add_argument("id")
    p.add_argument("action")
    p.add_argument("--reason", default="")
    p.add_argument("--yes", action="store_true", help="skip the confirmation prompt")

    p = sub.add_parser("delete", help="delete an entity")
    p.add_argument("resource", choices=resources)
    p.add_argument("id")
    p.add_argument("--yes", action="store_true", help="skip the confirmation prompt")

    p = sub.add_parser("export", help="export every matching item as CSV")
    p.add_argument("resource", choices=resources)
    p.add_argument("out")
    filters(p)

    sub.add_parser("redirects", help="list SEO redirects")
    return parser


async def run(args) -> int:
    async with ApiClient(args.base_url) as api:
        return await COMMANDS[args.command](api, args)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except ConsoleError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc.user_message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
