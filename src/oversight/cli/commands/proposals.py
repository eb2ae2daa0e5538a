#!/usr/bin/env python
"""
Proposal commands - submit, decide, implement, impact, revert, proposals.
"""

from __future__ import annotations

import argparse

from oversight.cli.commands.common import build_api, parse_json_arg
from oversight.cli.formatting.output import ConsoleOutput
from oversight.governance import TransitionResult


def _report(output: ConsoleOutput, result: TransitionResult, verb: str) -> int:
    proposal = result.proposal
    entry = result.history_entry

    def render():
        output.print_success(f"{verb} proposal {proposal.id} ({proposal.status.value})")
        if result.gate is not None:
            output.print_dim(f"gate: {result.gate.reason}")
        if entry is not None:
            output.print(
                f"trust {entry.previous_score:.4f} -> {entry.new_score:.4f} "
                f"({entry.change_reason})"
            )

    output.emit(
        {
            "proposal": proposal.to_dict(),
            "capability": result.capability.to_dict(),
            "history_entry": entry.to_dict() if entry else None,
            "attempts": result.attempts,
        },
        render,
    )
    return 0


async def run_submit(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        result = await api.submit_proposal(
            agent_name=args.agent,
            capability_kind=args.kind,
            title=args.title,
            proposed_change=parse_json_arg(args.change, "--change"),
            rationale=args.rationale,
            predicted_impact=args.predicted_impact,
            supporting_evidence=parse_json_arg(args.evidence, "--evidence"),
            affected_extraction_ids=args.extraction_id,
        )
    return _report(output, result, "Submitted")


async def run_decide(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        result = await api.record_decision(
            args.proposal_id, args.decision, args.reviewer, notes=args.notes
        )
    verb = "Approved" if args.decision == "approve" else "Rejected"
    return _report(output, result, verb)


async def run_implement(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        result = await api.mark_implemented(
            args.proposal_id,
            details=parse_json_arg(args.details, "--details"),
            implemented_by=args.by,
        )
    return _report(output, result, "Implemented")


async def run_impact(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        result = await api.record_impact(
            args.proposal_id,
            args.score,
            args.actual_impact,
            details=parse_json_arg(args.details, "--details"),
            measured_by=args.by,
        )
    return _report(output, result, "Measured")


async def run_revert(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        result = await api.revert_proposal(args.proposal_id, args.reason, reverted_by=args.by)
    return _report(output, result, "Reverted")


async def run_list(args: argparse.Namespace, output: ConsoleOutput) -> int:
    async with build_api(args) as api:
        proposals = await api.list_proposals(
            status=args.status,
            agent_name=args.agent,
            capability_kind=args.kind,
            limit=args.limit,
        )
    output.emit(
        [p.to_dict() for p in proposals],
        lambda: output.proposals_table(proposals),
    )
    return 0
