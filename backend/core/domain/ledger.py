"""
core.domain.ledger — External append-only ledger client.

Every notarized action is sent as an ``addLog(string,string,string,string,string)``
contract call over Ethereum JSON-RPC (``eth_sendTransaction``).  The core
never waits on this call inside a transaction: records are queued in the
outbox and delivered after commit by the dispatcher.

The client is chosen from ``settings.LEDGER``::

    LEDGER = {
        "ENABLED": True,
        "RPC_URL": "http://127.0.0.1:7545",
        "CONTRACT_ADDRESS": "0x...",
        "FROM_ADDRESS": "0x...",
        "TIMEOUT": 10,
    }

When ``ENABLED`` is false, ``DisabledLedgerClient`` is used and every
record call returns ``None``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Protocol, Sequence

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

#: First four bytes of keccak256("addLog(string,string,string,string,string)").
ADD_LOG_SELECTOR = "0x9c8c7759"

#: Gas limit sent with every transaction (3,000,000).
GAS_LIMIT = "0x2DC6C0"

_WORD = 32


class LedgerError(Exception):
    """The ledger endpoint rejected the call or could not be reached."""


class LedgerClient(Protocol):
    def record(
        self,
        case_code: str,
        action_type: str,
        content_hash: str,
        payload: str,
        actor_role: str,
    ) -> str | None:
        ...


def canonical_payload(data: Any) -> str:
    """Serialize ``data`` deterministically (sorted keys, compact)."""
    return json.dumps(data, cls=DjangoJSONEncoder, sort_keys=True, separators=(",", ":"))


def content_hash(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def encode_string_args(args: Sequence[str]) -> str:
    """
    ABI-encode a sequence of dynamic ``string`` arguments (hex, no 0x).

    Layout: one 32-byte offset word per argument, followed by each
    argument's length word and right-padded UTF-8 bytes.
    """
    head = []
    tail = []
    offset = len(args) * _WORD
    for arg in args:
        raw = arg.encode("utf-8")
        padded_len = -(-len(raw) // _WORD) * _WORD
        head.append(f"{offset:064x}")
        tail.append(f"{len(raw):064x}")
        tail.append(raw.hex().ljust(padded_len * 2, "0"))
        offset += _WORD + padded_len
    return "".join(head) + "".join(tail)


class DisabledLedgerClient:
    def record(self, case_code, action_type, content_hash, payload, actor_role):
        logger.debug("Ledger disabled; skipping %s for %s", action_type, case_code)
        return None


class JsonRpcLedgerClient:
    """Sends ``addLog`` transactions to a JSON-RPC node."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        from_address: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.from_address = from_address
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_request(
        self,
        case_code: str,
        action_type: str,
        content_hash: str,
        payload: str,
        actor_role: str,
    ) -> dict[str, Any]:
        data = ADD_LOG_SELECTOR + encode_string_args(
            [case_code, action_type, content_hash, payload, actor_role]
        )
        return {
            "jsonrpc": "2.0",
            "method": "eth_sendTransaction",
            "params": [{
                "from": self.from_address,
                "to": self.contract_address,
                "data": data,
                "gas": GAS_LIMIT,
            }],
            "id": 1,
        }

    def record(
        self,
        case_code: str,
        action_type: str,
        content_hash: str,
        payload: str,
        actor_role: str,
    ) -> str | None:
        """
        Submit one ledger record.

        Returns:
            The transaction hash reported by the node.

        Raises:
            LedgerError: On transport failure or a JSON-RPC error object.
        """
        body = self.build_request(case_code, action_type, content_hash, payload, actor_role)
        try:
            response = self.session.post(self.rpc_url, json=body, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise LedgerError(f"Ledger request failed: {exc}") from exc

        if "error" in result:
            raise LedgerError(f"Ledger RPC error: {result['error']}")
        return result.get("result")


def get_ledger_client() -> LedgerClient:
    config = getattr(settings, "LEDGER", {})
    if not config.get("ENABLED"):
        return DisabledLedgerClient()
    return JsonRpcLedgerClient(
        rpc_url=config["RPC_URL"],
        contract_address=config["CONTRACT_ADDRESS"],
        from_address=config["FROM_ADDRESS"],
        timeout=config.get("TIMEOUT", 10.0),
    )
