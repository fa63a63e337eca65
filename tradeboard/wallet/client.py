"""Wallet signing client.

Wraps a WalletProvider to obtain an address and sign the login challenge.
The message handed to ``sign`` is sent to the wallet byte-for-byte; the
backend recomputes the signed payload from the message it issued, so any
rewriting here would break verification.
"""

from __future__ import annotations

from dataclasses import dataclass

from tradeboard.errors import NotConnected, SigningFailed, UserRejected, WalletError, WalletUnavailable
from tradeboard.observability.logger import get_logger
from tradeboard.wallet.provider import (
    KNOWN_CHAINS,
    UNRECOGNIZED_CHAIN,
    USER_REJECTED,
    ProviderError,
    WalletProvider,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class WalletConnection:
    """An authorized account on a provider."""
    address: str
    chain_id: int


class WalletClient:
    """Connection state for one wallet provider.

    Construct one per login surface; nothing is shared between instances.
    """

    def __init__(self, provider: WalletProvider | None):
        self._provider = provider
        self._connection: WalletConnection | None = None

    @property
    def is_available(self) -> bool:
        return self._provider is not None

    @property
    def connection(self) -> WalletConnection | None:
        return self._connection

    async def connect(self) -> WalletConnection:
        """Request account access and remember the first authorized account."""
        provider = self._require_provider()
        try:
            accounts = await provider.request("eth_requestAccounts")
            chain_hex = await provider.request("eth_chainId")
        except ProviderError as e:
            if e.code == USER_REJECTED:
                raise UserRejected("Wallet connection rejected by user") from e
            raise WalletError(f"Failed to connect wallet: {e.message}") from e

        if not accounts:
            raise WalletError("Failed to connect wallet: no authorized accounts")

        try:
            chain_id = int(str(chain_hex), 16) if chain_hex else 0
        except ValueError as e:
            raise WalletError(f"Failed to connect wallet: bad chain id {chain_hex!r}") from e

        self._connection = WalletConnection(address=str(accounts[0]), chain_id=chain_id)
        log.info("wallet.connected", wallet=self._connection.address[:10], chain_id=self._connection.chain_id)
        return self._connection

    async def sign(self, message: str) -> str:
        """Sign ``message`` exactly as given with the connected account."""
        if self._connection is None or self._provider is None:
            raise NotConnected("Wallet not connected")
        payload = "0x" + message.encode("utf-8").hex()
        try:
            signature = await self._provider.request(
                "personal_sign", [payload, self._connection.address],
            )
        except ProviderError as e:
            if e.code == USER_REJECTED:
                raise UserRejected("Signature request rejected by user") from e
            raise SigningFailed(f"Failed to sign message: {e.message}") from e
        if not signature:
            raise SigningFailed("Failed to sign message: empty signature")
        return str(signature)

    async def switch_chain(self, chain_id: int) -> WalletConnection:
        """Switch the provider to ``chain_id``, adding the chain if unknown."""
        if self._connection is None or self._provider is None:
            raise NotConnected("Wallet not connected")
        params = [{"chainId": hex(chain_id)}]
        try:
            await self._provider.request("wallet_switchEthereumChain", params)
        except ProviderError as e:
            if e.code != UNRECOGNIZED_CHAIN or chain_id not in KNOWN_CHAINS:
                raise WalletError(f"Failed to switch to chain {chain_id}") from e
            try:
                await self._provider.request("wallet_addEthereumChain", [KNOWN_CHAINS[chain_id]])
                await self._provider.request("wallet_switchEthereumChain", params)
            except ProviderError as add_error:
                raise WalletError(f"Failed to add chain {chain_id}") from add_error

        self._connection = WalletConnection(address=self._connection.address, chain_id=chain_id)
        return self._connection

    def disconnect(self) -> None:
        self._connection = None

    def _require_provider(self) -> WalletProvider:
        if self._provider is None:
            raise WalletUnavailable("No wallet provider found")
        return self._provider
