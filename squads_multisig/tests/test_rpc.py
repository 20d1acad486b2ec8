import base64
import unittest
from unittest import TestCase, mock

import requests

from squads_multisig.config import ClientConfig
from squads_multisig.errors import RemoteUnavailable, RpcError, SubmissionRejected, Timeout
from squads_multisig.rpc import Deadline, RpcRecordStore


class TestDeadline(TestCase):
    def test_remaining_and_expiry(self):
        now = [100.0]
        deadline = Deadline(5, clock=lambda: now[0])
        self.assertEqual(deadline.remaining(), 5)
        now[0] = 106.0
        self.assertTrue(deadline.expired())
        with self.assertRaises(Timeout) as ctx:
            deadline.remaining("getBalance")
        self.assertEqual(ctx.exception.operation, "getBalance")


class TestRpcRecordStore(TestCase):
    def setUp(self):
        self.config = ClientConfig(rpc_endpoint="https://rpc.example/?api-key=secret", request_timeout=30)
        self.session = mock.MagicMock()
        self.store = RpcRecordStore(self.config, self.session)

    def respond(self, payload):
        self.session.post.return_value.json.return_value = payload

    def test_get_account(self):
        self.respond({"result": {"value": {"data": [base64.b64encode(b"abc").decode(), "base64"]}}})
        self.assertEqual(self.store.get("Addr"), b"abc")

        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"]["method"], "getAccountInfo")
        self.assertEqual(kwargs["json"]["params"][1], {"encoding": "base64", "commitment": "confirmed"})
        self.assertEqual(kwargs["timeout"], 30)

    def test_missing_account(self):
        self.respond({"result": {"value": None}})
        self.assertIsNone(self.store.get("Addr"))

    def test_balance_and_blockhash(self):
        self.respond({"result": {"value": 42}})
        self.assertEqual(self.store.get_balance("Addr"), 42)
        self.respond({"result": {"value": {"blockhash": "Hash", "lastValidBlockHeight": 1}}})
        self.assertEqual(self.store.get_latest_blockhash(), "Hash")

    def test_deadline_caps_request_timeout(self):
        self.respond({"result": {"value": 1}})
        self.store.get_balance("Addr", Deadline(2, clock=lambda: 0.0))
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["timeout"], 2)

    def test_expired_deadline_sends_nothing(self):
        now = [0.0]
        deadline = Deadline(1, clock=lambda: now[0])
        now[0] = 2.0
        with self.assertRaises(Timeout):
            self.store.get("Addr", deadline)
        self.session.post.assert_not_called()

    def test_transport_errors(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(RemoteUnavailable) as ctx:
            self.store.get("Addr")
        self.assertNotIn("secret", str(ctx.exception))

        self.session.post.side_effect = requests.ReadTimeout("slow")
        with self.assertRaises(Timeout):
            self.store.get("Addr")

    def test_rpc_error(self):
        self.respond({"error": {"code": -32602, "message": "Invalid param"}})
        with self.assertRaises(RpcError) as ctx:
            self.store.get("Addr")
        self.assertEqual(ctx.exception.code, -32602)

    def test_send_transaction(self):
        self.respond({"result": "Sig"})
        self.assertEqual(self.store.send_transaction(b"\x01\x02"), "Sig")
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"]["params"][0], base64.b64encode(b"\x01\x02").decode())
        self.assertEqual(kwargs["json"]["params"][1]["encoding"], "base64")

    def test_signature_status(self):
        status = {"slot": 9, "confirmations": None, "err": None, "confirmationStatus": "finalized"}
        self.respond({"result": {"context": {"slot": 10}, "value": [status]}})
        self.assertEqual(self.store.get_signature_status("Sig"), status)
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"]["method"], "getSignatureStatuses")
        self.assertEqual(kwargs["json"]["params"], [["Sig"], {"searchTransactionHistory": True}])

        self.respond({"result": {"context": {"slot": 10}, "value": [None]}})
        self.assertIsNone(self.store.get_signature_status("Sig"))

    def test_program_rejection(self):
        self.respond({"error": {
            "code": -32002,
            "message": "Transaction simulation failed",
            "data": {"logs": ["Program log: AlreadyApproved"]},
        }})
        with self.assertRaises(SubmissionRejected) as ctx:
            self.store.send_transaction(b"\x01")
        self.assertEqual(ctx.exception.logs, ["Program log: AlreadyApproved"])


if __name__ == "__main__":
    unittest.main()
