#!/usr/bin/env python3
"""CLI interface for the Squads multisig client."""

import logging
import sys
from typing import Optional

import click
from dotenv import load_dotenv

from . import __version__
from .config import ClientConfig
from .errors import InvalidThreshold, SquadsError
from .formatters import (
    LAMPORTS_PER_SOL,
    explorer_url,
    format_multisig_json,
    format_multisig_table,
    format_plan,
    format_vote_result,
)
from .keypair import Keypair
from .lifecycle import MultisigClient
from .rpc import Deadline, RpcRecordStore
from .types import Member, TransactionPlan

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
EXECUTE_TIMEOUT = 120.0


def make_client(ctx: click.Context) -> MultisigClient:
    config = ctx.obj["config"]
    return MultisigClient(RpcRecordStore(config), config)


def submit_plan(
    ctx: click.Context,
    plan: TransactionPlan,
    signers: list,
    deadline: Deadline,
    confirm: bool = False,
    payer_path: Optional[str] = None,
) -> None:
    config = ctx.obj["config"]
    click.echo(format_plan(plan), err=True)
    client = make_client(ctx)
    signature = client.submit(plan, signers, deadline, confirm=confirm)
    click.echo(f"Signature: {signature}")
    click.echo(f"Explorer: {explorer_url(signature, config.rpc_endpoint)}", err=True)
    if confirm:
        click.echo("Transaction confirmed successfully", err=True)

    if plan.outcome is not None:
        execute_command = None
        if payer_path:
            execute_command = (
                f"squads transaction execute --multisig {plan.multisig} "
                f"--transaction {plan.transaction_index} --payer {payer_path}"
            )
        click.echo("")
        if plan.action == "propose":
            click.echo("Transaction was automatically approved by the creator.")
        click.echo(format_vote_result(plan.outcome, execute_command))


def run(fn):
    """Map any client error to a one-line message and exit code 1."""
    try:
        return fn()
    except InvalidThreshold as e:
        click.echo(e.explanation or f"Error: {e}", err=True)
        sys.exit(1)
    except SquadsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def parse_members(members: str, permissions: str) -> list[Member]:
    keys = [k.strip() for k in members.split(",") if k.strip()]
    masks = [p.strip() for p in permissions.split(",") if p.strip()]
    if len(keys) != len(masks):
        raise click.BadParameter(
            f"Number of members ({len(keys)}) must match number of permissions ({len(masks)})"
        )
    parsed = []
    for key, mask in zip(keys, masks):
        if not mask.isdigit() or int(mask) > 7:
            raise click.BadParameter(f"Invalid permission value {mask} for member {key}. Must be between 0-7.")
        parsed.append(Member.with_mask(key, int(mask)))
    return parsed


@click.group()
@click.version_option(version=__version__)
@click.option("-r", "--rpc", help="RPC endpoint URL")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, rpc: Optional[str], config_path: Optional[str], verbose: bool):
    """Propose, vote on and execute Squads v4 multisig transactions."""
    load_dotenv()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")

    config = ClientConfig.from_env()
    if config_path:
        try:
            config = ClientConfig.from_file(config_path, config)
        except SquadsError as e:
            raise click.ClickException(str(e))
    config = config.with_overrides(rpc_endpoint=rpc)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    click.echo(f"Using RPC: {config.display_endpoint}", err=True)


@cli.group()
def multisig():
    """Create and inspect multisig accounts."""
    pass


@multisig.command("create")
@click.option("-p", "--payer", required=True, type=click.Path(exists=True), help="Payer keypair JSON")
@click.option("-m", "--members", required=True, help="Comma-separated member public keys")
@click.option(
    "-P", "--permissions", required=True,
    help="Comma-separated permission masks (1=Propose, 2=Vote, 4=Execute, 7=Full)",
)
@click.option("-t", "--threshold", type=int, default=2, show_default=True, help="Approval threshold")
@click.option("-l", "--timelock", type=int, default=0, show_default=True, help="Timelock in seconds")
@click.option("--config-authority", help="Config authority (omit for an autonomous multisig)")
@click.option("--rent-collector", help="Account that collects rent from closed accounts")
@click.option("--memo", help="Memo attached to the creation")
@click.option(
    "--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True,
    help="Deadline in seconds, including confirmation",
)
@click.pass_context
def multisig_create(ctx, payer, members, permissions, threshold, timelock, config_authority, rent_collector, memo, timeout):
    """Create a new multisig; a fresh create key is generated."""
    def action():
        payer_keypair = Keypair.from_file(payer)
        create_key = Keypair.generate()
        deadline = Deadline(timeout)
        plan = make_client(ctx).create_multisig(
            payer_keypair.pubkey,
            create_key.pubkey,
            parse_members(members, permissions),
            threshold,
            timelock,
            config_authority=config_authority,
            rent_collector=rent_collector,
            memo=memo,
            deadline=deadline,
        )
        click.echo(f"Multisig address: {plan.multisig}")
        click.echo(f"Create key: {create_key.pubkey}", err=True)
        submit_plan(ctx, plan, [payer_keypair, create_key], deadline, confirm=True)

    run(action)


@multisig.command("info")
@click.option("-m", "--multisig", "address", required=True, help="Multisig address")
@click.option("-n", "--recent", type=int, default=5, show_default=True, help="Recent transactions to show")
@click.option("-f", "--format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("-o", "--output", type=click.Path(), help="Write output to file")
@click.option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True, help="Deadline in seconds")
@click.pass_context
def multisig_info(ctx, address, recent, format, output, timeout):
    """Show a multisig's configuration, vault and recent transactions."""
    def action():
        info = make_client(ctx).describe(address, recent, Deadline(timeout))
        if format == "json":
            output_text = format_multisig_json(info)
        else:
            output_text = format_multisig_table(info)

        if output:
            with open(output, "w") as f:
                f.write(output_text)
            click.echo(f"Output written to: {output}", err=True)
        else:
            click.echo(output_text)

    run(action)


@cli.group()
def transaction():
    """Propose, vote on and execute vault transactions."""
    pass


@transaction.command("create")
@click.option("-m", "--multisig", "address", required=True, help="Multisig address")
@click.option("-p", "--payer", required=True, type=click.Path(exists=True), help="Proposer keypair JSON")
@click.option("--to", "recipient", required=True, help="Recipient address")
@click.option("--amount", type=float, required=True, help="Amount in SOL")
@click.option("--vault-index", type=int, default=0, show_default=True, help="Vault index")
@click.option("--approve/--no-approve", default=True, show_default=True, help="Approve in the same transaction")
@click.option("--memo", help="Memo attached to the transaction")
@click.option(
    "--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True,
    help="Deadline in seconds, including confirmation",
)
@click.pass_context
def transaction_create(ctx, address, payer, recipient, amount, vault_index, approve, memo, timeout):
    """Propose a SOL transfer out of a multisig vault."""
    def action():
        proposer = Keypair.from_file(payer)
        deadline = Deadline(timeout)
        plan = make_client(ctx).propose_transfer(
            address,
            proposer.pubkey,
            recipient,
            round(amount * LAMPORTS_PER_SOL),
            vault_index=vault_index,
            memo=memo,
            auto_approve=approve,
            deadline=deadline,
        )
        submit_plan(ctx, plan, [proposer], deadline, confirm=True, payer_path=payer)

    run(action)


def _vote_command(name: str, help_text: str):
    @transaction.command(name, help=help_text)
    @click.option("-m", "--multisig", "address", required=True, help="Multisig address")
    @click.option("-i", "--transaction", "transaction_index", type=int, required=True, help="Transaction index")
    @click.option("-p", "--payer", required=True, type=click.Path(exists=True), help="Member keypair JSON")
    @click.option("--memo", help="Memo attached to the vote")
    @click.option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True, help="Deadline in seconds")
    @click.pass_context
    def command(ctx, address, transaction_index, payer, memo, timeout):
        def action():
            member = Keypair.from_file(payer)
            deadline = Deadline(timeout)
            plan = make_client(ctx).vote(address, transaction_index, member.pubkey, name, memo, deadline)
            submit_plan(ctx, plan, [member], deadline, payer_path=payer)

        run(action)

    return command


transaction_approve = _vote_command("approve", "Approve a proposed transaction.")
transaction_reject = _vote_command("reject", "Reject a proposed transaction.")
transaction_cancel = _vote_command("cancel", "Cancel an active or approved transaction.")


@transaction.command("execute")
@click.option("-m", "--multisig", "address", required=True, help="Multisig address")
@click.option("-i", "--transaction", "transaction_index", type=int, required=True, help="Transaction index")
@click.option("-p", "--payer", required=True, type=click.Path(exists=True), help="Executor keypair JSON")
@click.option("--timeout", type=float, default=EXECUTE_TIMEOUT, show_default=True, help="Deadline in seconds")
@click.pass_context
def transaction_execute(ctx, address, transaction_index, payer, timeout):
    """Execute an approved transaction once its timelock has elapsed."""
    def action():
        executor = Keypair.from_file(payer)
        deadline = Deadline(timeout)
        plan = make_client(ctx).execute(address, transaction_index, executor.pubkey, deadline=deadline)
        submit_plan(ctx, plan, [executor], deadline)

    run(action)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
