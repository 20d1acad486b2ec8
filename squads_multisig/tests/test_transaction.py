import json
import os
import tempfile
import unittest
from unittest import TestCase

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from squads_multisig.codec import address_to_bytes, bytes_to_address
from squads_multisig.errors import KeypairError, MessageTooLarge, MissingSignature
from squads_multisig.instructions import proposal_approve, transfer
from squads_multisig.keypair import Keypair
from squads_multisig.tests.fixtures import BLOCKHASH, addr
from squads_multisig.transaction import Transaction, encode_shortvec


class TestShortvec(TestCase):
    def test_encoding(self):
        self.assertEqual(encode_shortvec(0), b"\x00")
        self.assertEqual(encode_shortvec(0x7F), b"\x7f")
        self.assertEqual(encode_shortvec(0x80), b"\x80\x01")
        self.assertEqual(encode_shortvec(0x3FFF), b"\xff\x7f")
        self.assertEqual(encode_shortvec(0x4000), b"\x80\x80\x01")

    def test_out_of_range(self):
        with self.assertRaises(MessageTooLarge):
            encode_shortvec(0x10000)


class TestKeypair(TestCase):
    def test_file_round_trip(self):
        keypair = Keypair.generate()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "id.json")
            with open(path, "w") as f:
                json.dump(list(keypair.secret_bytes()), f)
            loaded = Keypair.from_file(path)
        self.assertEqual(loaded.pubkey, keypair.pubkey)

    def test_mismatched_public_half(self):
        secret = Keypair.generate().secret_bytes()[:32] + address_to_bytes(addr(1))
        with self.assertRaises(KeypairError):
            Keypair.from_secret_bytes(secret)

    def test_bad_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "id.json")
            with open(path, "w") as f:
                f.write('{"not": "a keypair"}')
            with self.assertRaises(KeypairError):
                Keypair.from_file(path)
            with self.assertRaises(KeypairError):
                Keypair.from_file(os.path.join(tmp, "missing.json"))


class TestTransaction(TestCase):
    def setUp(self):
        self.payer = Keypair.generate()
        self.member = Keypair.generate()

    def test_sign_and_serialize(self):
        tx = Transaction.new([transfer(self.payer.pubkey, addr(2), 10)], self.payer.pubkey, BLOCKHASH)
        self.assertEqual(tx.sign([self.payer]), [self.payer.pubkey])

        raw = tx.serialize()
        self.assertEqual(raw[0], 1)
        signature = raw[1:65]
        message = raw[65:]
        self.assertEqual(message, tx.message_bytes)
        # header: one signer, no readonly signers, system program readonly
        self.assertEqual(message[:3], bytes([1, 0, 1]))
        Ed25519PublicKey.from_public_bytes(address_to_bytes(self.payer.pubkey)).verify(signature, message)
        self.assertEqual(tx.signature, bytes_to_address(signature))

    def test_partially_signed_is_refused(self):
        # member signs the vote, a different key pays fees
        tx = Transaction.new([proposal_approve(addr(7), addr(21), self.member.pubkey)], self.payer.pubkey, BLOCKHASH)
        tx.sign([self.member])
        self.assertEqual(tx.missing_signers(), [self.payer.pubkey])
        with self.assertRaises(MissingSignature) as ctx:
            tx.serialize()
        self.assertEqual(ctx.exception.missing, [self.payer.pubkey])

    def test_unrelated_signers_are_ignored(self):
        tx = Transaction.new([transfer(self.payer.pubkey, addr(2), 10)], self.payer.pubkey, BLOCKHASH)
        self.assertEqual(tx.sign([self.member, self.payer]), [self.payer.pubkey])
        tx.serialize()


if __name__ == "__main__":
    unittest.main()
