#!/usr/bin/env python
"""
Capability commands - init, policy, capabilities, history, summary, verify.
"""

from __future__ import annotations

import argparse

from oversight.cli.commands.common import build_api
from oversight.cli.formatting.output import ConsoleOutput


async def run_init(args: argparse.Namespace, output: ConsoleOutput) -> int:
    api = build_api(args)
    async with api:
        pass
    output.emit(
        {"db_path": str(api.store.db_path), "audit_path": str(api.auditor.audit_path)},
        lambda: output.print_success(f"Governance store ready at {api.store.db_path}"),
    )
    return 0


async def run_policy(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        capability = await api.update_capability_policy(
            args.capability_id,
            auto_approve_threshold=args.threshold,
            requires_review=args.requires_review,
            description=args.description,
            updated_by=args.by,
        )
    output.emit(
        capability.to_dict(),
        lambda: output.capabilities_table([capability], title="Updated Capability"),
    )
    return 0


async def run_list(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        if args.by_agent:
            grouped = await api.capabilities_by_agent()
        else:
            capabilities = await api.list_capabilities(args.agent)

    if args.by_agent:
        def render():
            if not grouped:
                output.print_dim("No capabilities yet")
            for agent, caps in grouped.items():
                output.capabilities_table(caps, title=agent)

        output.emit(
            {agent: [c.to_dict() for c in caps] for agent, caps in grouped.items()},
            render,
        )
    else:
        output.emit(
            [c.to_dict() for c in capabilities],
            lambda: output.capabilities_table(capabilities),
        )
    return 0


async def run_history(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        if args.capability_id:
            entries = await api.trust_history(args.capability_id)
            title = f"Trust History {args.capability_id}"
        else:
            entries = await api.recent_trust_history(args.limit)
            title = "Recent Trust Changes"
    output.emit(
        [e.to_dict() for e in entries],
        lambda: output.history_table(entries, title=title),
    )
    return 0


async def run_summary(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        summary = await api.fleet_summary()
    output.emit(summary.to_dict(), lambda: output.summary_table(summary))
    return 0


async def run_verify(args: argparse.Namespace, output: ConsoleOutput) -> int:
    """Replay trust history. Exits 1 if any capability fails."""
    async with build_api(args) as api:
        if args.capability_id:
            ids = [args.capability_id]
        else:
            ids = [c.id for c in await api.list_capabilities()]
        reports = [await api.verify_trust(capability_id) for capability_id in ids]

    def render():
        for report in reports:
            if report.ok:
                output.print_success(
                    f"{report.capability_id}: {report.entries} entries, "
                    f"score {report.stored_score:.4f} reproduced"
                )
            else:
                output.print_error(
                    f"{report.capability_id}: replayed {report.replayed_score:.4f}, "
                    f"stored {report.stored_score:.4f}, "
                    f"broken links {len(report.broken_links)}"
                )

    output.emit([r.to_dict() for r in reports], render)
    return 0 if all(r.ok for r in reports) else 1
