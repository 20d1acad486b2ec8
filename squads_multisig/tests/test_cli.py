import json
import os
import tempfile
import unittest
from unittest import TestCase, mock

import click
from click.testing import CliRunner

from squads_multisig.cli import cli, parse_members
from squads_multisig.codec import encode_program_config
from squads_multisig.keypair import Keypair
from squads_multisig.pda import get_program_config_pda, get_proposal_pda, get_vault_pda
from squads_multisig.tests.fixtures import (
    FakeRecordStore,
    addr,
    make_multisig,
    make_proposal,
    store_multisig,
    store_proposal,
)
from squads_multisig.types import Member, ProgramConfig


class CliTestCase(TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.store = FakeRecordStore()
        self.patcher = mock.patch("squads_multisig.cli.RpcRecordStore", return_value=self.store)
        self.patcher.start()

        self.tmp = tempfile.TemporaryDirectory()
        self.member = Keypair.generate()
        self.keypair_path = os.path.join(self.tmp.name, "member.json")
        with open(self.keypair_path, "w") as f:
            json.dump(list(self.member.secret_bytes()), f)

        self.multisig_address = addr(70)
        multisig = make_multisig(transaction_index=2)
        multisig.members.append(Member.with_mask(self.member.pubkey, 7))
        store_multisig(self.store, self.multisig_address, multisig)

    def tearDown(self):
        self.patcher.stop()
        self.tmp.cleanup()

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--rpc", "https://api.devnet.solana.com", *args], obj={})


class TestTransactionCommands(CliTestCase):
    def test_create(self):
        vault, _ = get_vault_pda(self.multisig_address, 0)
        self.store.balances[vault] = 2_000_000_000
        result = self.invoke(
            "transaction", "create",
            "--multisig", self.multisig_address,
            "--payer", self.keypair_path,
            "--to", addr(99),
            "--amount", "1",
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Signature: 5igSignature", result.output)
        self.assertEqual(len(self.store.sent), 1)

    def test_create_reports_confirmation_and_approvals(self):
        vault, _ = get_vault_pda(self.multisig_address, 0)
        self.store.balances[vault] = 2_000_000_000
        result = self.invoke(
            "transaction", "create",
            "--multisig", self.multisig_address,
            "--payer", self.keypair_path,
            "--to", addr(99),
            "--amount", "0.5",
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Transaction confirmed successfully", result.output)
        self.assertIn("automatically approved by the creator", result.output)
        self.assertIn("Approvals: 1/2", result.output)

    def test_create_failed_on_chain(self):
        vault, _ = get_vault_pda(self.multisig_address, 0)
        self.store.balances[vault] = 2_000_000_000
        self.store.statuses["5igSignature"] = {"err": {"InstructionError": [1, {"Custom": 6000}]}}
        result = self.invoke(
            "transaction", "create",
            "--multisig", self.multisig_address,
            "--payer", self.keypair_path,
            "--to", addr(99),
            "--amount", "1",
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("failed with error", result.output)
        self.assertNotIn("confirmed successfully", result.output)

    def test_negative_amount(self):
        result = self.invoke(
            "transaction", "create",
            "--multisig", self.multisig_address,
            "--payer", self.keypair_path,
            "--to", addr(99),
            "--amount", "-1",
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error: Invalid amount in lamports", result.output)
        self.assertEqual(self.store.sent, [])

    def test_first_approval_needs_more(self):
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(self.store, proposal_address, make_proposal(self.multisig_address, 2))
        result = self.invoke(
            "transaction", "approve",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Approvals: 1/2", result.output)
        self.assertIn("needs 1 more approval(s)", result.output)

    def test_approval_reaching_threshold(self):
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(self.store, proposal_address, make_proposal(self.multisig_address, 2, approved=[addr(1)]))
        result = self.invoke(
            "transaction", "approve",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Approvals: 2/2", result.output)
        self.assertIn("ready for execution", result.output)
        self.assertIn(
            f"squads transaction execute --multisig {self.multisig_address} "
            f"--transaction 2 --payer {self.keypair_path}",
            result.output,
        )

    def test_approval_reaching_threshold_with_timelock(self):
        multisig = make_multisig(time_lock=3600, transaction_index=2)
        multisig.members.append(Member.with_mask(self.member.pubkey, 7))
        store_multisig(self.store, self.multisig_address, multisig)
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(self.store, proposal_address, make_proposal(self.multisig_address, 2, approved=[addr(1)]))
        result = self.invoke(
            "transaction", "approve",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Due to timelock, it will be executable after:", result.output)
        self.assertIn("(1.0 hours remaining)", result.output)
        self.assertNotIn("squads transaction execute", result.output)

    def test_approve_twice_fails(self):
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(
            self.store, proposal_address, make_proposal(self.multisig_address, 2, approved=[self.member.pubkey])
        )
        result = self.invoke(
            "transaction", "approve",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("already voted", result.output)
        self.assertEqual(self.store.sent, [])

    def test_reject(self):
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(self.store, proposal_address, make_proposal(self.multisig_address, 2))
        result = self.invoke(
            "transaction", "reject",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
            "--memo", "not now",
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("cluster=devnet", result.output)

    def test_execute_not_approved(self):
        proposal_address, _ = get_proposal_pda(self.multisig_address, 2)
        store_proposal(self.store, proposal_address, make_proposal(self.multisig_address, 2))
        result = self.invoke(
            "transaction", "execute",
            "--multisig", self.multisig_address,
            "--transaction", "2",
            "--payer", self.keypair_path,
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not in approved state", result.output)


class TestMultisigCommands(CliTestCase):
    def test_info_json(self):
        result = self.invoke("multisig", "info", "--multisig", self.multisig_address, "--format", "json")
        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(result.output[result.output.index("{"):result.output.rindex("}") + 1])
        self.assertEqual(payload["address"], self.multisig_address)
        self.assertEqual(payload["member_count"], 4)

    def test_info_missing(self):
        result = self.invoke("multisig", "info", "--multisig", addr(71))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Multisig account not found", result.output)

    def test_create_invalid_threshold(self):
        result = self.invoke(
            "multisig", "create",
            "--payer", self.keypair_path,
            "--members", f"{addr(1)},{addr(2)}",
            "--permissions", "1,1",
            "--threshold", "2",
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Threshold Configuration Error", result.output)

    def test_create_confirms(self):
        config_address, _ = get_program_config_pda()
        self.store.accounts[config_address] = encode_program_config(
            ProgramConfig(authority=addr(80), multisig_creation_fee=0, treasury=addr(81))
        )
        result = self.invoke(
            "multisig", "create",
            "--payer", self.keypair_path,
            "--members", f"{self.member.pubkey},{addr(2)}",
            "--permissions", "7,2",
            "--threshold", "2",
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Multisig address:", result.output)
        self.assertIn("Transaction confirmed successfully", result.output)
        self.assertEqual(self.store.status_polls, 1)


class TestParseMembers(TestCase):
    def test_parse(self):
        members = parse_members(f"{addr(1)}, {addr(2)}", "7,2")
        self.assertEqual(members, [Member.with_mask(addr(1), 7), Member.with_mask(addr(2), 2)])

    def test_mismatched_counts(self):
        with self.assertRaises(click.BadParameter):
            parse_members(addr(1), "7,2")
        with self.assertRaises(click.BadParameter):
            parse_members(addr(1), "9")


if __name__ == "__main__":
    unittest.main()
