#!/usr/bin/env python3
"""
CLI tool for interacting with the coop approval service.

Usage:
    python -m coop_svc.cli --actor m-001 create LOAN_APPLICATION --content '{"amount": 250000}'
    python -m coop_svc.cli --actor a-001 transition REQ-1A2B3C4D5E6F review
    python -m coop_svc.cli --actor a-001 transition REQ-1A2B3C4D5E6F reject --notes "Missing guarantor"
    python -m coop_svc.cli list --status DISBURSED --type LOAN_APPLICATION
    python -m coop_svc.cli pending
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import httpx
from colorama import Fore, Style, init as colorama_init

colorama_init()

STATUS_COLORS = {
    "PENDING": Fore.YELLOW,
    "IN_REVIEW": Fore.CYAN,
    "REVIEWED": Fore.BLUE,
    "APPROVED": Fore.MAGENTA,
    "COMPLETED": Fore.GREEN,
    "REJECTED": Fore.RED,
    "CANCELLED": Style.DIM,
}


def colorize(text: str, color: str) -> str:
    """Apply color."""
    return f"{color}{text}{Style.RESET_ALL}"


def format_status(status: str) -> str:
    return colorize(status, STATUS_COLORS.get(status, ""))


def print_json(data: Any, indent: int = 2) -> None:
    """Print JSON."""
    output = json.dumps(data, indent=indent, default=str)
    print(output)


def print_request(req: dict) -> None:
    """Pretty print a request with its approval chain."""
    print(colorize("\nRequest:", Style.BRIGHT), req["id"])
    print(colorize("Type:", Style.BRIGHT), req["type"])
    print(colorize("Status:", Style.BRIGHT), format_status(req["status"]))
    print(colorize("Initiator:", Style.BRIGHT), req["initiator_id"])
    print(colorize("Priority:", Style.BRIGHT), req.get("priority", "NORMAL"))
    linked = req.get("linked_entity")
    if linked:
        print(colorize("Linked:", Style.BRIGHT), f"{linked['domain_module']}:{linked['entity_id']}")

    print(f"\n{colorize('Approval chain:', Style.BRIGHT)}")
    for step in req.get("approval_steps", []):
        marker = ">" if step["level"] == req.get("current_approval_level") else " "
        who = f" by {step['approver_id']}" if step.get("approver_id") else ""
        print(f" {marker} L{step['level']} {step['approver_role']:<12} {format_status(step['status'])}{who}")


def print_history(entries: list[dict]) -> None:
    print(colorize("\nHistory:", Style.BRIGHT))
    if not entries:
        print(f"  {colorize('(none)', Style.DIM)}")
    for h in entries:
        notes = f"  {colorize(h['notes'], Style.DIM)}" if h.get("notes") else ""
        print(
            f"  {h['timestamp']}  {format_status(h['from_status'])} -> "
            f"{format_status(h['to_status'])}  {h['actor_id']}{notes}"
        )


async def _call(args, method: str, path: str, **kwargs) -> httpx.Response | None:
    """Issue one request; prints the error body and returns None on failure."""
    url = f"{args.base_url}{path}"
    async with httpx.AsyncClient() as client:
        response = await client.request(method, url, headers=_get_headers(args), **kwargs)

    if response.status_code >= 400:
        print(colorize(f"Error: {response.status_code}", Fore.RED), file=sys.stderr)
        print(response.text, file=sys.stderr)
        return None
    return response


async def cmd_create(args):
    """Create a request."""
    try:
        content = json.loads(args.content) if args.content else {}
    except json.JSONDecodeError as e:
        print(colorize(f"Invalid --content JSON: {e}", Fore.RED), file=sys.stderr)
        return 1

    body: dict[str, Any] = {"type": args.type, "content": content}
    if args.priority:
        body["priority"] = args.priority
    if args.link:
        module, _, entity_id = args.link.partition(":")
        body["linked_entity"] = {"domain_module": module, "entity_id": entity_id}

    response = await _call(args, "POST", "/requests", json=body)
    if response is None:
        return 1
    print_request(response.json())
    return 0


async def cmd_transition(args):
    """Apply a transition to a request."""
    body = {"action": args.action, "notes": args.notes or ""}
    response = await _call(args, "POST", f"/requests/{args.request_id}/transition", json=body)
    if response is None:
        return 1
    print_request(response.json())
    return 0


async def cmd_get(args):
    """Show one request."""
    response = await _call(args, "GET", f"/requests/{args.request_id}")
    if response is None:
        return 1
    data = response.json()
    if args.json:
        print_json(data)
        return 0
    print_request(data)
    print_history(data.get("history", []))
    return 0


async def cmd_history(args):
    response = await _call(args, "GET", f"/requests/{args.request_id}/history")
    if response is None:
        return 1
    print_history(response.json())
    return 0


async def cmd_list(args):
    """List requests."""
    params = {
        key: value
        for key, value in {
            "type": args.type,
            "status": args.status,
            "module": args.module,
            "initiator_id": args.initiator,
            "actor_id": args.involving,
            "page": args.page,
            "limit": args.limit,
            "sort_by": args.sort_by,
            "sort_order": args.sort_order,
        }.items()
        if value is not None
    }
    response = await _call(args, "GET", "/requests", params=params)
    if response is None:
        return 1

    data = response.json()
    meta = data["meta"]
    print(colorize(
        f"\nRequests (page {meta['page']}/{meta['totalPages']}, {meta['total']} total):",
        Style.BRIGHT,
    ))
    for req in data["data"]:
        print(
            f"  {req['id']}  {req['type']:<28} {format_status(req['status']):<20} "
            f"L{req['current_approval_level']}  {req['initiator_id']}"
        )
    return 0


async def cmd_pending(args):
    params = {k: v for k, v in {"type": args.type, "module": args.module}.items() if v}
    response = await _call(args, "GET", "/requests/pending-count", params=params)
    if response is None:
        return 1
    print(colorize("Pending:", Style.BRIGHT), response.json()["count"])
    return 0


async def cmd_metrics(args):
    params = {k: v for k, v in {"type": args.type, "module": args.module}.items() if v}
    response = await _call(args, "GET", "/requests/metrics", params=params)
    if response is None:
        return 1
    print_json(response.json())
    return 0


async def cmd_delete(args):
    response = await _call(args, "DELETE", f"/requests/{args.request_id}")
    if response is None:
        return 1
    print(colorize(f"Deleted {args.request_id}", Fore.GREEN))
    return 0


def _get_headers(args) -> dict:
    """Build request headers."""
    headers = {}
    if args.actor:
        headers["X-Actor-ID"] = args.actor
    return headers


def main():
    parser = argparse.ArgumentParser(
        description="CLI tool for the Coop Approval Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--base-url",
        default="http://localhost:8060",
        help="Base URL of the coop approval service",
    )
    parser.add_argument(
        "--actor",
        help="Acting member or officer id (sent as X-Actor-ID)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # create command
    create_parser = subparsers.add_parser("create", help="Create a request")
    create_parser.add_argument("type", help="Request type (e.g., LOAN_APPLICATION)")
    create_parser.add_argument("--content", help="Request content as JSON")
    create_parser.add_argument("--priority", choices=["NORMAL", "MEDIUM", "HIGH"])
    create_parser.add_argument("--link", help="Existing domain record as module:entity_id")

    # transition command
    transition_parser = subparsers.add_parser("transition", help="Review, approve, reject... a request")
    transition_parser.add_argument("request_id")
    transition_parser.add_argument(
        "action",
        help="review | mark_reviewed | approve | complete | reject | cancel",
    )
    transition_parser.add_argument("--notes", help="Notes (required reason for reject)")

    # get command
    get_parser = subparsers.add_parser("get", help="Show a request")
    get_parser.add_argument("request_id")
    get_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    # history command
    history_parser = subparsers.add_parser("history", help="Show a request's status history")
    history_parser.add_argument("request_id")

    # list command
    list_parser = subparsers.add_parser("list", help="List requests")
    list_parser.add_argument("--type")
    list_parser.add_argument("--status", help="Request status or domain alias (e.g., DISBURSED)")
    list_parser.add_argument("--module")
    list_parser.add_argument("--initiator")
    list_parser.add_argument("--involving", help="Initiator or any approver")
    list_parser.add_argument("--page", type=int)
    list_parser.add_argument("--limit", type=int)
    list_parser.add_argument("--sort-by")
    list_parser.add_argument("--sort-order", choices=["asc", "desc"])

    # pending / metrics commands
    for name, help_text in (("pending", "Pending request count"), ("metrics", "Dashboard counts")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--type")
        p.add_argument("--module")

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete an untouched PENDING request")
    delete_parser.add_argument("request_id")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "create": cmd_create,
        "transition": cmd_transition,
        "get": cmd_get,
        "history": cmd_history,
        "list": cmd_list,
        "pending": cmd_pending,
        "metrics": cmd_metrics,
        "delete": cmd_delete,
    }
    return asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    sys.exit(main() or 0)
