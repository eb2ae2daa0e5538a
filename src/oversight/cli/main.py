#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from oversight import __version__
from oversight.cli.commands import capabilities, proposals
from oversight.cli.formatting.output import ConsoleOutput
from oversight.errors import GovernanceError
from oversight.governance.models import CapabilityKind, Decision, ProposalStatus

COMMANDS = {
    "init": capabilities.run_init,
    "submit": proposals.run_submit,
    "decide": proposals.run_decide,
    "implement": proposals.run_implement,
    "impact": proposals.run_impact,
    "revert": proposals.run_revert,
    "policy": capabilities.run_policy,
    "capabilities": capabilities.run_list,
    "proposals": proposals.run_list,
    "history": capabilities.run_history,
    "summary": capabilities.run_summary,
    "verify": capabilities.run_verify,
}


def _repo_root() -> Path:
    return Path.cwd().resolve()


def build_parser() -> argparse.ArgumentParser:
    kinds = [k.value for k in CapabilityKind]

    parser = argparse.ArgumentParser(
        prog="oversight",
        description="Oversight CLI - agent trust and proposal governance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument("--root", default=str(_repo_root()), help="Project root (default: cwd)")
    parser.add_argument("--db", help="Database path (default: <root>/.oversight/governance.db)")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--version", action="version", version=f"oversight {__version__}")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # --- Command Definitions ---
    subparsers.add_parser("init", help="Create the governance database")

    submit_p = subparsers.add_parser("submit", help="Submit a proposal for an agent")
    submit_p.add_argument("agent", help="Agent name")
    submit_p.add_argument("kind", choices=kinds, help="Capability kind")
    submit_p.add_argument("--title", required=True)
    submit_p.add_argument("--change", required=True, help="Proposed change (JSON or text)")
    submit_p.add_argument("--rationale", required=True)
    submit_p.add_argument("--predicted-impact")
    submit_p.add_argument("--evidence", help="Supporting evidence (JSON or text)")
    submit_p.add_argument(
        "--extraction-id", action="append", help="Affected extraction id (repeatable)"
    )

    decide_p = subparsers.add_parser("decide", help="Approve or reject a pending proposal")
    decide_p.add_argument("proposal_id")
    decide_p.add_argument("decision", choices=[d.value for d in Decision])
    decide_p.add_argument("--reviewer", required=True, help="Reviewer id")
    decide_p.add_argument("--notes")

    implement_p = subparsers.add_parser("implement", help="Mark an approved proposal implemented")
    implement_p.add_argument("proposal_id")
    implement_p.add_argument("--details", help="Implementation details (JSON or text)")
    implement_p.add_argument("--by", help="Actor id")

    impact_p = subparsers.add_parser("impact", help="Record measured impact of a proposal")
    impact_p.add_argument("proposal_id")
    impact_p.add_argument("score", type=float, help="Success score in [0, 1]")
    impact_p.add_argument("--actual-impact", required=True)
    impact_p.add_argument("--details", help="Measurement details (JSON or text)")
    impact_p.add_argument("--by", help="Actor id")

    revert_p = subparsers.add_parser("revert", help="Revert an implemented proposal")
    revert_p.add_argument("proposal_id")
    revert_p.add_argument("--reason", required=True)
    revert_p.add_argument("--by", help="Actor id")

    policy_p = subparsers.add_parser("policy", help="Update a capability's review policy")
    policy_p.add_argument("capability_id")
    policy_p.add_argument("--threshold", type=float, help="Auto-approve threshold in [0, 1]")
    review_group = policy_p.add_mutually_exclusive_group()
    review_group.add_argument(
        "--require-review", dest="requires_review", action="store_const", const=True
    )
    review_group.add_argument(
        "--allow-auto", dest="requires_review", action="store_const", const=False
    )
    policy_p.add_argument("--description")
    policy_p.add_argument("--by", help="Actor id")

    caps_p = subparsers.add_parser("capabilities", help="List capabilities")
    caps_p.add_argument("--agent", help="Only this agent")
    caps_p.add_argument("--by-agent", action="store_true", help="Group by agent")

    props_p = subparsers.add_parser("proposals", help="List proposals, newest first")
    props_p.add_argument("--status", choices=[s.value for s in ProposalStatus])
    props_p.add_argument("--agent")
    props_p.add_argument("--kind", choices=kinds)
    props_p.add_argument("--limit", type=int, default=100)

    history_p = subparsers.add_parser("history", help="Show trust history")
    history_p.add_argument("capability_id", nargs="?", help="Capability (default: all, recent)")
    history_p.add_argument("--limit", type=int, default=50)

    subparsers.add_parser("summary", help="Agent and fleet trust summary")

    verify_p = subparsers.add_parser("verify", help="Replay trust history and check the chain")
    verify_p.add_argument("capability_id", nargs="?", help="Capability (default: all)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Keep oversight at INFO for progress, quiet the driver
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("oversight").setLevel(logging.DEBUG if args.verbose else logging.INFO)
    if args.verbose:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    load_dotenv(Path(args.root) / ".env")

    if args.command is None:
        parser.print_help()
        return 0

    output = ConsoleOutput(json_mode=args.json)
    try:
        return asyncio.run(COMMANDS[args.command](args, output))
    except GovernanceError as e:
        output.print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
