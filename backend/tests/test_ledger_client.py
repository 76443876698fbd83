"""
Unit tests for the JSON-RPC ledger client.
"""

from __future__ import annotations

from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from core.domain.ledger import (
    ADD_LOG_SELECTOR,
    GAS_LIMIT,
    DisabledLedgerClient,
    JsonRpcLedgerClient,
    LedgerError,
    encode_string_args,
    get_ledger_client,
)


def _word(n: int) -> str:
    return f"{n:064x}"


class TestAbiEncoding(SimpleTestCase):

    def test_single_short_string(self):
        encoded = encode_string_args(["abc"])
        self.assertEqual(
            encoded,
            _word(32) + _word(3) + "616263".ljust(64, "0"),
        )

    def test_offsets_account_for_padding(self):
        long_value = "x" * 33  # needs two data words
        encoded = encode_string_args([long_value, "y"])
        words = [encoded[i:i + 64] for i in range(0, len(encoded), 64)]
        # head: two offsets
        self.assertEqual(int(words[0], 16), 64)
        self.assertEqual(int(words[1], 16), 64 + 32 + 64)
        # first tail: length 33 then two data words
        self.assertEqual(int(words[2], 16), 33)
        # second tail
        self.assertEqual(int(words[5], 16), 1)
        self.assertEqual(words[6], "79".ljust(64, "0"))

    def test_empty_string_has_length_word_only(self):
        self.assertEqual(encode_string_args([""]), _word(32) + _word(0))

    def test_utf8_length_is_in_bytes(self):
        encoded = encode_string_args(["é"])
        self.assertEqual(int(encoded[64:128], 16), 2)


class TestJsonRpcLedgerClient(SimpleTestCase):

    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.client = JsonRpcLedgerClient(
            rpc_url="http://node:7545",
            contract_address="0xcontract",
            from_address="0xsender",
            timeout=3,
            session=self.session,
        )

    def _response(self, body):
        response = mock.Mock()
        response.json.return_value = body
        response.raise_for_status.return_value = None
        return response

    def test_request_shape(self):
        body = self.client.build_request("PPKPT1", "CREATE", "hash", "{}", "REPORTER")
        self.assertEqual(body["method"], "eth_sendTransaction")
        tx = body["params"][0]
        self.assertEqual(tx["from"], "0xsender")
        self.assertEqual(tx["to"], "0xcontract")
        self.assertEqual(tx["gas"], GAS_LIMIT)
        self.assertTrue(tx["data"].startswith(ADD_LOG_SELECTOR))
        self.assertEqual(
            tx["data"][len(ADD_LOG_SELECTOR):],
            encode_string_args(["PPKPT1", "CREATE", "hash", "{}", "REPORTER"]),
        )

    def test_record_returns_transaction_hash(self):
        self.session.post.return_value = self._response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"})
        self.assertEqual(self.client.record("PPKPT1", "CREATE", "h", "{}", "REPORTER"), "0xfeed")
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["timeout"], 3)

    def test_rpc_error_raises(self):
        self.session.post.return_value = self._response({"error": {"code": -32000, "message": "revert"}})
        with self.assertRaises(LedgerError):
            self.client.record("PPKPT1", "CREATE", "h", "{}", "REPORTER")

    def test_transport_error_raises(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(LedgerError):
            self.client.record("PPKPT1", "CREATE", "h", "{}", "REPORTER")

    def test_disabled_client_records_nothing(self):
        self.assertIsNone(DisabledLedgerClient().record("PPKPT1", "CREATE", "h", "{}", "REPORTER"))

    @override_settings(LEDGER={"ENABLED": False})
    def test_factory_disabled(self):
        self.assertIsInstance(get_ledger_client(), DisabledLedgerClient)

    @override_settings(LEDGER={
        "ENABLED": True,
        "RPC_URL": "http://node:7545",
        "CONTRACT_ADDRESS": "0xc",
        "FROM_ADDRESS": "0xf",
    })
    def test_factory_enabled(self):
        client = get_ledger_client()
        self.assertIsInstance(client, JsonRpcLedgerClient)
        self.assertEqual(client.rpc_url, "http://node:7545")
