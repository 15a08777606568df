"""Read-only ledger queries against the Anky session contract.

The reconciler needs two contract views when a session ends normally:

* ``getCompletedSessionCount(uint256 fid) -> uint256``
* ``completedSessions(uint256 fid, uint256 index) -> string`` (IPFS hash)

:class:`JsonRpcLedgerReader` issues them as JSON-RPC ``eth_call`` requests
over httpx, pinned to the block of the event being processed when known.
ABI encoding is limited to what these two views need: static uint256
arguments, and a uint256 or a single dynamic string as the return value.
"""

from __future__ import annotations

import itertools
from typing import Any, Protocol

import httpx

# keccak256(signature)[:4]
SELECTOR_COMPLETED_SESSION_COUNT = "5682c5c6"  # getCompletedSessionCount(uint256)
SELECTOR_COMPLETED_SESSIONS = "7156e4b5"  # completedSessions(uint256,uint256)

_WORD = 32
_UINT256_MAX = (1 << 256) - 1


class LedgerReadError(Exception):
    """A ledger query failed or returned data that could not be decoded."""


class LedgerReader(Protocol):
    """Read-only view of per-writer completed-session counters on the ledger."""

    async def completed_session_count(self, fid: int, block: int | None = None) -> int: ...

    async def completed_session_at(self, fid: int, index: int, block: int | None = None) -> str: ...


# ---------------------------------------------------------------------------
# ABI helpers
# ---------------------------------------------------------------------------


def encode_uint256(value: int) -> str:
    """Encode an unsigned integer as one 32-byte ABI word (hex, no prefix)."""
    if value < 0 or value > _UINT256_MAX:
        msg = f"uint256 out of range: {value}"
        raise ValueError(msg)
    return format(value, "064x")


def encode_call(selector: str, *args: int) -> str:
    """Build ``eth_call`` data for a function taking only uint256 arguments."""
    return "0x" + selector + "".join(encode_uint256(a) for a in args)


def _result_bytes(result: str) -> bytes:
    if not isinstance(result, str) or not result.startswith("0x"):
        msg = f"Unexpected eth_call result: {result!r}"
        raise LedgerReadError(msg)
    try:
        return bytes.fromhex(result[2:])
    except ValueError as e:
        msg = f"Result is not hex: {result!r}"
        raise LedgerReadError(msg) from e


def decode_uint256(result: str) -> int:
    """Decode a single uint256 return value."""
    data = _result_bytes(result)
    if len(data) < _WORD:
        msg = f"Short uint256 result ({len(data)} bytes)"
        raise LedgerReadError(msg)
    return int.from_bytes(data[:_WORD], "big")


def decode_string(result: str) -> str:
    """Decode a single dynamic ``string`` return value (offset, length, bytes)."""
    data = _result_bytes(result)
    if len(data) < 2 * _WORD:
        msg = f"Short string result ({len(data)} bytes)"
        raise LedgerReadError(msg)
    offset = int.from_bytes(data[:_WORD], "big")
    if offset + _WORD > len(data):
        msg = f"String offset {offset} beyond result length {len(data)}"
        raise LedgerReadError(msg)
    length = int.from_bytes(data[offset:offset + _WORD], "big")
    start = offset + _WORD
    if start + length > len(data):
        msg = f"String length {length} beyond result length {len(data)}"
        raise LedgerReadError(msg)
    try:
        return data[start:start + length].decode("utf-8")
    except UnicodeDecodeError as e:
        msg = "String result is not valid UTF-8"
        raise LedgerReadError(msg) from e


# ---------------------------------------------------------------------------
# JSON-RPC reader
# ---------------------------------------------------------------------------


class JsonRpcLedgerReader:
    """LedgerReader backed by an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    async def completed_session_count(self, fid: int, block: int | None = None) -> int:
        data = encode_call(SELECTOR_COMPLETED_SESSION_COUNT, fid)
        return decode_uint256(await self._eth_call(data, block))

    async def completed_session_at(self, fid: int, index: int, block: int | None = None) -> str:
        if index < 0:
            msg = f"No completed session at index {index} for fid {fid}"
            raise LedgerReadError(msg)
        data = encode_call(SELECTOR_COMPLETED_SESSIONS, fid, index)
        return decode_string(await self._eth_call(data, block))

    async def _eth_call(self, data: str, block: int | None) -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "eth_call",
            "params": [
                {"to": self.contract_address, "data": data},
                hex(block) if block is not None else "latest",
            ],
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            msg = f"eth_call to {self.rpc_url} failed: {e}"
            raise LedgerReadError(msg) from e

        if body.get("error"):
            msg = f"eth_call returned error: {body['error']}"
            raise LedgerReadError(msg)
        if "result" not in body:
            msg = "eth_call response has no result"
            raise LedgerReadError(msg)
        return body["result"]
