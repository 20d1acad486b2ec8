"""Output formatters for the Squads multisig client."""

import json
from datetime import datetime, timezone
from typing import Optional, Sequence

from .config import mask_api_key
from .proposal import status_label
from .types import (
    PERMISSION_EXECUTE,
    PERMISSION_PROPOSE,
    PERMISSION_VOTE,
    Executing,
    Member,
    MultisigInfo,
    ProposalStatus,
    TransactionPlan,
    VoteOutcome,
)

LAMPORTS_PER_SOL = 1_000_000_000

_STATUS_PREPOSITION = {
    "Draft": "created",
    "Active": "since",
}


def format_timelock(seconds: int) -> str:
    """Format timelock duration for display."""
    if seconds == 0:
        return "None (0 seconds)"
    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    if seconds < 86400:
        return f"{seconds / 3600:.1f} hours"
    return f"{seconds / 86400:.1f} days"


def format_unix_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:f} SOL"


def permission_names(mask: int) -> list[str]:
    """Parse permission mask to list of permission names."""
    perms = []
    if mask & PERMISSION_PROPOSE:
        perms.append("Propose")
    if mask & PERMISSION_VOTE:
        perms.append("Vote")
    if mask & PERMISSION_EXECUTE:
        perms.append("Execute")
    return perms if perms else ["No Permissions"]


def describe_permissions(mask: int) -> str:
    return ", ".join(permission_names(mask))


def describe_status(status: Optional[ProposalStatus]) -> str:
    label = status_label(status)
    if label == "Unknown":
        return "Unknown Status"
    if isinstance(status, Executing):
        return label
    preposition = _STATUS_PREPOSITION.get(label, "at")
    return f"{label} ({preposition} {format_unix_timestamp(status.timestamp)})"


def explain_threshold_error(members: Sequence[Member], threshold: int) -> str:
    voting = [m.key for m in members if m.can_vote()]
    non_voting = [m for m in members if not m.can_vote()]

    lines = [
        "Threshold Configuration Error:",
        f"  Requested Threshold: {threshold}",
        f"  Voting Members Count: {len(voting)}",
        "",
        "Voting Members:",
    ]
    lines.extend(f"  - {key}" for key in voting)
    lines.append("")
    lines.append("Non-Voting Members:")
    lines.extend(f"  - {m.key} ({describe_permissions(m.permissions.mask)})" for m in non_voting)
    lines.extend([
        "",
        "To resolve this issue, you have two options:",
        "1. Reduce the threshold to match the number of voting members",
        "2. Modify member permissions to include more voting members",
        "",
        "Permissions Explanation:",
        "  - 1 (Propose): Can create proposals",
        "  - 2 (Vote): Can vote on proposals ✓ COUNTS TOWARDS THRESHOLD",
        "  - 4 (Execute): Can execute proposals",
        "  - 7 (Full): Can propose, vote, and execute ✓ COUNTS TOWARDS THRESHOLD",
    ])
    return "\n".join(lines)


def format_multisig_table(multisig: MultisigInfo) -> str:
    """Format a multisig analysis as a table."""
    lines = []
    divider = "─" * 70

    lines.append(divider)
    lines.append(f"MULTISIG: {multisig.address}")
    lines.append(divider)
    lines.append(f"Threshold:          {multisig.threshold_display}")
    lines.append(f"Timelock:           {multisig.time_lock_display}")
    lines.append(f"Timelock (seconds): {multisig.time_lock_seconds}")
    lines.append(f"Create Key:         {multisig.create_key}")
    lines.append(f"Config Authority:   {multisig.config_authority or 'None (Autonomous)'}")
    lines.append(f"Rent Collector:     {multisig.rent_collector or 'None'}")
    lines.append(f"Transaction Count:  {multisig.transaction_index}")
    lines.append(f"Stale Tx Index:     {multisig.stale_transaction_index}")

    lines.append("")
    lines.append("Members:")
    for i, member in enumerate(multisig.members, 1):
        lines.append(f"  {i}. {member.address}")
        lines.append(f"     Permissions: {', '.join(member.permissions)}")

    if multisig.vault:
        lines.append("")
        lines.append("Vault Information:")
        lines.append(f"  Vault Address:      {multisig.vault.vault_address}")
        if multisig.vault.vault_index is not None:
            lines.append(f"  Vault Index:        {multisig.vault.vault_index}")
        if multisig.vault.balance_lamports is None:
            lines.append("  Balance:            Unable to fetch balance")
        else:
            lines.append(f"  Balance:            {format_sol(multisig.vault.balance_lamports)}")

    if multisig.recent_proposals:
        lines.append("")
        lines.append("Recent Transactions:")
        for p in multisig.recent_proposals:
            lines.append(f"  #{p.transaction_index}: {p.status or 'No proposal'}")
            lines.append(
                f"     Approvals: {p.approvals}, Rejections: {p.rejections}, "
                f"Cancellations: {p.cancellations}"
            )

    lines.append(divider)

    return "\n".join(lines)


def format_multisig_json(multisig: MultisigInfo, pretty: bool = True) -> str:
    """Format multisig as JSON."""
    def to_dict(obj):
        if hasattr(obj, "__dataclass_fields__"):
            return {k: to_dict(v) for k, v in obj.__dict__.items()}
        elif isinstance(obj, list):
            return [to_dict(item) for item in obj]
        else:
            return obj

    data = to_dict(multisig)
    if pretty:
        return json.dumps(data, indent=2)
    return json.dumps(data)


def format_plan(plan: TransactionPlan) -> str:
    lines = [f"Action:             {plan.action}", f"Multisig:           {plan.multisig}"]
    if plan.transaction_index is not None:
        lines.append(f"Transaction Index:  {plan.transaction_index}")
    if plan.transaction_address:
        lines.append(f"Transaction PDA:    {plan.transaction_address}")
    if plan.proposal_address:
        lines.append(f"Proposal PDA:       {plan.proposal_address}")
    if plan.vault_address:
        lines.append(f"Vault:              {plan.vault_address}")
    lines.append(f"Instructions:       {len(plan.instructions)}")
    return "\n".join(lines)


def format_vote_result(outcome: VoteOutcome, execute_command: Optional[str] = None) -> str:
    """Tallies after a vote, and what has to happen before the transaction can run."""
    lines = [
        f"Transaction Status: {outcome.status}",
        f"Approvals: {outcome.approvals}/{outcome.threshold}",
    ]
    if outcome.rejections:
        lines.append(f"Rejections: {outcome.rejections}")
    if outcome.cancellations:
        lines.append(f"Cancellations: {outcome.cancellations}")

    if outcome.status in ("Rejected", "Cancelled"):
        lines.append("")
        lines.append(f"Transaction is {outcome.status.lower()} and can no longer be executed.")
    elif outcome.threshold_reached:
        lines.append("")
        lines.append("Transaction has reached approval threshold!")
        if outcome.timelock_remaining > 0:
            lines.append(
                f"Due to timelock, it will be executable after: "
                f"{format_unix_timestamp(outcome.executable_after)} "
                f"({format_timelock(outcome.timelock_remaining)} remaining)"
            )
        else:
            lines.append("Transaction is ready for execution!")
            if execute_command:
                lines.append("")
                lines.append("To execute this transaction, run:")
                lines.append(f"  {execute_command}")
    else:
        lines.append("")
        lines.append(
            f"Transaction needs {outcome.threshold - outcome.approvals} more approval(s) to reach threshold."
        )
    return "\n".join(lines)


def explorer_url(signature: str, rpc_endpoint: str) -> str:
    endpoint = rpc_endpoint.lower()
    if "devnet" in endpoint:
        return f"https://explorer.solana.com/tx/{signature}?cluster=devnet"
    if "testnet" in endpoint:
        return f"https://explorer.solana.com/tx/{signature}?cluster=testnet"
    if "localhost" in endpoint or "127.0.0.1" in endpoint:
        return f"https://explorer.solana.com/tx/{signature}?cluster=custom&customUrl={mask_api_key(rpc_endpoint)}"
    return f"https://explorer.solana.com/tx/{signature}"
