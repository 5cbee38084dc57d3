"""
Ledger Transport Test Suite

Covers the lookup result variant, revocation, and both ledger
implementations (in-memory and signed JSON-lines file).
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from prnotary import (
    ApprovalEngine,
    ArtifactDescriptor,
    Credential,
    FileLedger,
    Found,
    InMemoryLedger,
    LedgerConfig,
    LedgerIntegrityError,
    LedgerRecord,
    NotFound,
    TrustStatus,
    ledger_client_factory,
)
from prnotary.util import sha256_hex


ARTIFACT = ArtifactDescriptor(
    hash=sha256_hex(b"tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904\n\nfirst\n"),
    name="git://repo@1a2b3c4",
    size=52,
    metadata={"git": {"commit": "1a2b3c4d"}}
)


def credential(approver: str, secret: str = "S3CR3T") -> Credential:
    signer_id = f"{approver}@github"
    return Credential(
        approver=approver,
        signer_id=signer_id,
        key=f"{signer_id}.{secret}",
        key_id=f"k-{approver}"
    )


class TestLedgerRecord(unittest.TestCase):

    def test_revoked_record_forces_apikey_revoked(self):
        record = LedgerRecord.for_artifact(ARTIFACT, "alice@github", TrustStatus.TRUSTED)

        self.assertEqual(record.effective_status(), TrustStatus.TRUSTED)
        revoked = LedgerRecord.from_dict(dict(record.to_dict(), revoked=1700000000))
        self.assertTrue(revoked.is_revoked())
        self.assertEqual(revoked.effective_status(), TrustStatus.APIKEY_REVOKED)

    def test_zero_revocation_timestamp_is_not_revoked(self):
        record = LedgerRecord.from_dict(dict(
            LedgerRecord.for_artifact(ARTIFACT, "alice@github", TrustStatus.TRUSTED).to_dict(),
            revoked=0
        ))

        self.assertFalse(record.is_revoked())

    def test_record_carries_artifact_fields(self):
        record = LedgerRecord.for_artifact(ARTIFACT, "alice@github", TrustStatus.UNTRUSTED)

        self.assertEqual(record.hash, ARTIFACT.content_hash)
        self.assertEqual(record.name, ARTIFACT.display_name)
        self.assertEqual(record.metadata, {"git": {"commit": "1a2b3c4d"}})


class TestInMemoryLedger(unittest.TestCase):

    def setUp(self):
        self.ledger = InMemoryLedger()

    def test_not_found_before_notarization(self):
        client = self.ledger.client(credential("alice"))
        with client.session():
            self.assertEqual(client.load_artifact(ARTIFACT.hash), NotFound())

    def test_sign_then_load(self):
        client = self.ledger.client(credential("alice"))
        with client.session():
            client.sign(ARTIFACT, TrustStatus.TRUSTED)
            result = client.load_artifact(ARTIFACT.hash)

        self.assertIsInstance(result, Found)
        self.assertTrue(result.verified)
        self.assertEqual(result.record.signer, "alice@github")
        self.assertEqual(self.ledger.sign_calls, ["alice@github"])

    def test_records_are_per_signer(self):
        self.ledger.notarize(ARTIFACT, "alice@github")

        client = self.ledger.client(credential("bob"))
        with client.session():
            self.assertIsInstance(client.load_artifact(ARTIFACT.hash), NotFound)

    def test_revoke_and_tamper(self):
        self.ledger.notarize(ARTIFACT, "alice@github")
        self.ledger.revoke("alice@github", when=1700000000)
        self.ledger.tamper("alice@github", ARTIFACT.hash)

        result = self.ledger.lookup("alice@github", ARTIFACT.hash)

        self.assertEqual(result.record.revoked, 1700000000)
        self.assertFalse(result.verified)

    def test_offline_signer_cannot_connect(self):
        self.ledger.set_offline("alice@github")

        with self.assertRaises(ConnectionError):
            with self.ledger.client(credential("alice")).session():
                pass

    def test_calls_require_session(self):
        client = self.ledger.client(credential("alice"))

        with self.assertRaises(ConnectionError):
            client.load_artifact(ARTIFACT.hash)

    def test_session_disconnects_on_exit(self):
        client = self.ledger.client(credential("alice"))
        with client.session():
            self.assertTrue(client.connected)
        self.assertFalse(client.connected)


class TestFileLedger(unittest.TestCase):

    def setUp(self):
        self.store_dir = tempfile.mkdtemp()
        self.config = LedgerConfig(
            host="ledger.example", port="3324", no_tls=True,
            store_dir=str(Path(self.store_dir) / "state")
        )

    def tearDown(self):
        shutil.rmtree(self.store_dir, ignore_errors=True)

    def sign(self, cred, status=TrustStatus.TRUSTED):
        client = FileLedger(self.config, cred)
        with client.session():
            return client.sign(ARTIFACT, status)

    def load(self, cred):
        client = FileLedger(self.config, cred)
        with client.session():
            return client.load_artifact(ARTIFACT.hash)

    def test_store_dir_created_with_client_config(self):
        self.load(credential("alice"))

        config_path = Path(self.config.store_dir) / "config.json"
        client_config = json.loads(config_path.read_text(encoding="utf-8"))
        self.assertEqual(client_config["host"], "ledger.example")
        self.assertTrue(client_config["no_tls"])
        self.assertNotIn("key", client_config)

    def test_not_found_on_empty_ledger(self):
        self.assertIsInstance(self.load(credential("alice")), NotFound)

    def test_signed_record_verifies(self):
        self.sign(credential("alice"))

        result = self.load(credential("alice"))

        self.assertIsInstance(result, Found)
        self.assertTrue(result.verified)
        self.assertEqual(result.record.status, TrustStatus.TRUSTED)
        self.assertEqual(result.record.name, "git://repo@1a2b3c4")

    def test_other_signer_not_found(self):
        self.sign(credential("alice"))

        self.assertIsInstance(self.load(credential("bob")), NotFound)

    def test_record_survives_key_rotation(self):
        self.sign(credential("alice", secret="FIRST"))

        result = self.load(credential("alice", secret="ROTATED"))

        self.assertTrue(result.verified)

    def test_latest_record_wins(self):
        self.sign(credential("alice"), TrustStatus.UNTRUSTED)
        self.sign(credential("alice"), TrustStatus.TRUSTED)

        self.assertEqual(self.load(credential("alice")).record.status, TrustStatus.TRUSTED)

    def test_tampered_record_is_unverified(self):
        self.sign(credential("alice"), TrustStatus.UNTRUSTED)
        ledger_path = FileLedger(self.config, credential("alice")).path
        entry = json.loads(ledger_path.read_text(encoding="utf-8"))
        entry["record"]["status"] = "TRUSTED"
        ledger_path.write_text(json.dumps(entry) + "\n", encoding="utf-8")

        result = self.load(credential("alice"))

        self.assertIsInstance(result, Found)
        self.assertFalse(result.verified)

    def test_record_signed_for_another_signer_is_unverified(self):
        mallory = Credential(approver="bob", signer_id="bob@github", key="mallory.ANY")
        self.sign(mallory)

        result = self.load(credential("bob"))

        self.assertIsInstance(result, Found)
        self.assertFalse(result.verified)

    def test_forged_record_aborts_the_run(self):
        mallory = Credential(approver="bob", signer_id="bob@github", key="mallory.ANY")
        self.sign(mallory)
        engine = ApprovalEngine(ledger_client_factory(self.config))

        with self.assertRaises(LedgerIntegrityError) as ctx:
            engine.run(ARTIFACT, {"bob": credential("bob")}, "carol")

        self.assertEqual(ctx.exception.approver, "bob")

    def test_unenrolled_credential_cannot_sign_for_signer(self):
        self.sign(credential("bob"))
        mallory = Credential(approver="bob", signer_id="bob@github", key="mallory.ANY")

        with self.assertRaises(PermissionError):
            self.sign(mallory)

        self.assertTrue(self.load(credential("bob")).verified)

    def test_appended_line_with_foreign_key_is_unverified(self):
        self.sign(credential("alice"), TrustStatus.UNTRUSTED)
        other = Credential(approver="alice", signer_id="alice@github", key="other.KEY")
        other_store = LedgerConfig(
            host="ledger.example", port="3324", no_tls=True,
            store_dir=str(Path(self.store_dir) / "other")
        )
        client = FileLedger(other_store, other)
        with client.session():
            client.sign(ARTIFACT, TrustStatus.TRUSTED)
        forged_line = client.path.read_text(encoding="utf-8")
        with open(FileLedger(self.config, credential("alice")).path, "a", encoding="utf-8") as f:
            f.write(forged_line)

        result = self.load(credential("alice"))

        self.assertEqual(result.record.status, TrustStatus.TRUSTED)
        self.assertFalse(result.verified)

    def test_rotated_key_is_enrolled_on_sign(self):
        self.sign(credential("alice", secret="FIRST"), TrustStatus.UNTRUSTED)
        self.sign(credential("alice", secret="ROTATED"))

        keyring_path = Path(self.config.store_dir) / "signers.json"
        keyring = json.loads(keyring_path.read_text(encoding="utf-8"))
        self.assertEqual(keyring["alice@github"]["key_id"], "k-alice")
        self.assertEqual(len(keyring["alice@github"]["verify_keys"]), 2)
        self.assertTrue(self.load(credential("alice", secret="FIRST")).verified)

    def test_factory_builds_file_clients(self):
        client = ledger_client_factory(self.config)(credential("alice"))

        self.assertIsInstance(client, FileLedger)
        self.assertEqual(client.signer_id, "alice@github")


if __name__ == "__main__":
    unittest.main(verbosity=2)
