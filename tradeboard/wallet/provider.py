"""Wallet providers: the capability a WalletClient signs through.

A provider answers EIP-1193 style requests (``request(method, params)``)
and signals failures with ``ProviderError`` carrying the EIP-1193 error
code. Two implementations:

  - LocalKeyProvider: holds a key in process and signs with eth_account
  - JsonRpcProvider:  forwards requests to an external signer over JSON-RPC
"""

from __future__ import annotations

import itertools
from typing import Any, Protocol, runtime_checkable

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct

from tradeboard.observability.logger import get_logger

log = get_logger(__name__)

# EIP-1193 / EIP-3085 error codes
USER_REJECTED = 4001
UNAUTHORIZED = 4100
UNSUPPORTED_METHOD = 4200
UNRECOGNIZED_CHAIN = 4902
INTERNAL_ERROR = -32603

ETHEREUM_MAINNET = 1

# Parameters for wallet_addEthereumChain
KNOWN_CHAINS: dict[int, dict[str, Any]] = {
    ETHEREUM_MAINNET: {
        "chainId": "0x1",
        "chainName": "Ethereum Mainnet",
        "nativeCurrency": {"name": "Ethereum", "symbol": "ETH", "decimals": 18},
        "rpcUrls": ["https://mainnet.infura.io/v3/"],
        "blockExplorerUrls": ["https://etherscan.io/"],
    },
}


class ProviderError(Exception):
    """Error reported by a wallet provider."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


@runtime_checkable
class WalletProvider(Protocol):
    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        ...


def _decode_message(data: str) -> bytes:
    """personal_sign payloads are 0x-prefixed hex of the message bytes."""
    if data.startswith("0x"):
        try:
            return bytes.fromhex(data[2:])
        except ValueError:
            pass
    return data.encode("utf-8")


class LocalKeyProvider:
    """Signs with a private key held in this process."""

    def __init__(self, private_key: str, chain_id: int = ETHEREUM_MAINNET):
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._known_chains: set[int] = set(KNOWN_CHAINS) | {chain_id}

    @property
    def address(self) -> str:
        return self._account.address

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = params or []
        if method in ("eth_requestAccounts", "eth_accounts"):
            return [self._account.address]
        if method == "eth_chainId":
            return hex(self._chain_id)
        if method == "personal_sign":
            if len(params) < 2:
                raise ProviderError(-32602, "personal_sign expects [data, address]")
            data, address = params[0], params[1]
            if str(address).lower() != self._account.address.lower():
                raise ProviderError(UNAUTHORIZED, "Address not managed by this wallet")
            signed = self._account.sign_message(encode_defunct(primitive=_decode_message(data)))
            return "0x" + bytes(signed.signature).hex()
        if method == "wallet_switchEthereumChain":
            chain_id = int(params[0]["chainId"], 16)
            if chain_id not in self._known_chains:
                raise ProviderError(UNRECOGNIZED_CHAIN, f"Unrecognized chain ID {hex(chain_id)}")
            self._chain_id = chain_id
            return None
        if method == "wallet_addEthereumChain":
            self._known_chains.add(int(params[0]["chainId"], 16))
            return None
        raise ProviderError(UNSUPPORTED_METHOD, f"Unsupported method {method}")


class JsonRpcProvider:
    """Forwards wallet requests to an external JSON-RPC signer (e.g. a local
    wallet daemon). The signer is responsible for user confirmation."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = rpc_url
        self._timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            log.warning("wallet_rpc.request_failed", method=method, error=str(e))
            raise ProviderError(INTERNAL_ERROR, f"Wallet RPC unreachable: {e}") from e
        except ValueError as e:
            raise ProviderError(-32700, "Wallet RPC returned invalid JSON") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            raise _rpc_error(error)
        return data.get("result") if isinstance(data, dict) else None


def _rpc_error(error: Any) -> ProviderError:
    if not isinstance(error, dict):
        return ProviderError(INTERNAL_ERROR, str(error))
    try:
        code = int(error.get("code", INTERNAL_ERROR))
    except (TypeError, ValueError):
        code = INTERNAL_ERROR
    return ProviderError(code, str(error.get("message", "Wallet error")))
