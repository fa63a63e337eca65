"""Tests for wallet providers and the wallet signing client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from tradeboard.errors import NotConnected, SigningFailed, UserRejected, WalletError, WalletUnavailable
from tradeboard.wallet.client import WalletClient
from tradeboard.wallet.provider import (
    INTERNAL_ERROR,
    UNRECOGNIZED_CHAIN,
    USER_REJECTED,
    JsonRpcProvider,
    LocalKeyProvider,
    ProviderError,
    WalletProvider,
)

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ADDRESS = Account.from_key(TEST_PRIVATE_KEY).address


class RecordingProvider:
    """Scripted provider. ``sequences`` entries are consumed one per call."""

    def __init__(self, responses: dict[str, Any], sequences: dict[str, list[Any]] | None = None):
        self.responses = responses
        self.sequences = sequences or {}
        self.requests: list[tuple[str, list[Any] | None]] = []

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        self.requests.append((method, params))
        if self.sequences.get(method):
            value = self.sequences[method].pop(0)
        else:
            value = self.responses.get(method)
        if isinstance(value, ProviderError):
            raise value
        return value


def _connected_provider(sequences: dict[str, list[Any]] | None = None, **extra: Any) -> RecordingProvider:
    responses: dict[str, Any] = {
        "eth_requestAccounts": [ADDRESS],
        "eth_chainId": "0x1",
        "personal_sign": "0xsig",
    }
    responses.update(extra)
    return RecordingProvider(responses, sequences)


# ── WalletClient ─────────────────────────────────────────────────────


class TestConnect:
    @pytest.mark.asyncio
    async def test_no_provider(self):
        wallet = WalletClient(None)
        assert wallet.is_available is False
        with pytest.raises(WalletUnavailable):
            await wallet.connect()

    @pytest.mark.asyncio
    async def test_first_account_and_chain(self):
        provider = _connected_provider(eth_requestAccounts=[ADDRESS, "0x" + "99" * 20], eth_chainId="0x89")
        conn = await WalletClient(provider).connect()
        assert conn.address == ADDRESS
        assert conn.chain_id == 137

    @pytest.mark.asyncio
    async def test_user_rejects_connection(self):
        provider = _connected_provider(eth_requestAccounts=ProviderError(USER_REJECTED, "User rejected"))
        with pytest.raises(UserRejected):
            await WalletClient(provider).connect()

    @pytest.mark.asyncio
    async def test_other_provider_error(self):
        provider = _connected_provider(eth_requestAccounts=ProviderError(-32002, "Request pending"))
        with pytest.raises(WalletError) as exc:
            await WalletClient(provider).connect()
        assert not isinstance(exc.value, UserRejected)
        assert "Request pending" in str(exc.value)

    @pytest.mark.asyncio
    async def test_no_accounts(self):
        with pytest.raises(WalletError):
            await WalletClient(_connected_provider(eth_requestAccounts=[])).connect()

    @pytest.mark.asyncio
    async def test_malformed_chain_id(self):
        wallet = WalletClient(_connected_provider(eth_chainId="mainnet"))
        with pytest.raises(WalletError) as exc:
            await wallet.connect()
        assert "chain id" in str(exc.value)
        assert wallet.connection is None


class TestSign:
    @pytest.mark.asyncio
    async def test_sign_before_connect(self):
        with pytest.raises(NotConnected):
            await WalletClient(_connected_provider()).sign("hello")

    @pytest.mark.asyncio
    async def test_message_is_sent_verbatim(self):
        provider = _connected_provider()
        wallet = WalletClient(provider)
        await wallet.connect()
        message = "Sign in to Tradeboard\n\nNonce: abc123 ünïcode  \n"
        assert await wallet.sign(message) == "0xsig"
        method, params = provider.requests[-1]
        assert method == "personal_sign"
        assert params == ["0x" + message.encode("utf-8").hex(), ADDRESS]
        assert bytes.fromhex(params[0][2:]).decode("utf-8") == message

    @pytest.mark.asyncio
    async def test_user_rejects_signature(self):
        wallet = WalletClient(_connected_provider(personal_sign=ProviderError(USER_REJECTED, "denied")))
        await wallet.connect()
        with pytest.raises(UserRejected):
            await wallet.sign("hi")

    @pytest.mark.asyncio
    async def test_signing_error(self):
        wallet = WalletClient(_connected_provider(personal_sign=ProviderError(-32603, "internal")))
        await wallet.connect()
        with pytest.raises(SigningFailed):
            await wallet.sign("hi")

    @pytest.mark.asyncio
    async def test_empty_signature(self):
        wallet = WalletClient(_connected_provider(personal_sign=""))
        await wallet.connect()
        with pytest.raises(SigningFailed):
            await wallet.sign("hi")

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        wallet = WalletClient(_connected_provider())
        await wallet.connect()
        wallet.disconnect()
        wallet.disconnect()
        assert wallet.connection is None
        with pytest.raises(NotConnected):
            await wallet.sign("hi")


class TestSwitchChain:
    @pytest.mark.asyncio
    async def test_switch_known_chain(self):
        provider = _connected_provider(wallet_switchEthereumChain=None)
        wallet = WalletClient(provider)
        await wallet.connect()
        conn = await wallet.switch_chain(1)
        assert conn.chain_id == 1
        assert provider.requests[-1] == ("wallet_switchEthereumChain", [{"chainId": "0x1"}])

    @pytest.mark.asyncio
    async def test_unrecognized_chain_is_added_then_switched(self):
        provider = _connected_provider(
            eth_chainId="0x89",
            sequences={"wallet_switchEthereumChain": [ProviderError(UNRECOGNIZED_CHAIN, "Unrecognized chain")]},
            wallet_addEthereumChain=None,
        )
        wallet = WalletClient(provider)
        await wallet.connect()
        conn = await wallet.switch_chain(1)
        methods = [m for m, _ in provider.requests]
        assert methods[-3:] == [
            "wallet_switchEthereumChain", "wallet_addEthereumChain", "wallet_switchEthereumChain",
        ]
        assert provider.requests[-2][1][0]["chainName"] == "Ethereum Mainnet"
        assert conn.chain_id == 1

    @pytest.mark.asyncio
    async def test_other_switch_error(self):
        provider = _connected_provider(
            wallet_switchEthereumChain=ProviderError(USER_REJECTED, "denied"),
        )
        wallet = WalletClient(provider)
        await wallet.connect()
        with pytest.raises(WalletError):
            await wallet.switch_chain(1)


# ── LocalKeyProvider ─────────────────────────────────────────────────


class TestLocalKeyProvider:
    def test_satisfies_protocol(self):
        assert isinstance(LocalKeyProvider(TEST_PRIVATE_KEY), WalletProvider)

    @pytest.mark.asyncio
    async def test_signature_recovers_to_address(self):
        wallet = WalletClient(LocalKeyProvider(TEST_PRIVATE_KEY))
        conn = await wallet.connect()
        message = "Sign in to Tradeboard\nNonce: 5f2c"
        signature = await wallet.sign(message)
        assert signature.startswith("0x") and len(signature) == 132
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
        assert recovered == conn.address == ADDRESS

    @pytest.mark.asyncio
    async def test_foreign_address_is_refused(self):
        provider = LocalKeyProvider(TEST_PRIVATE_KEY)
        with pytest.raises(ProviderError) as exc:
            await provider.request("personal_sign", ["0x00", "0x" + "99" * 20])
        assert exc.value.code == 4100

    @pytest.mark.asyncio
    async def test_unknown_chain_then_added(self):
        provider = LocalKeyProvider(TEST_PRIVATE_KEY)
        with pytest.raises(ProviderError) as exc:
            await provider.request("wallet_switchEthereumChain", [{"chainId": "0x2105"}])
        assert exc.value.code == UNRECOGNIZED_CHAIN
        await provider.request("wallet_addEthereumChain", [{"chainId": "0x2105"}])
        await provider.request("wallet_switchEthereumChain", [{"chainId": "0x2105"}])
        assert await provider.request("eth_chainId") == "0x2105"

    @pytest.mark.asyncio
    async def test_unsupported_method(self):
        with pytest.raises(ProviderError) as exc:
            await LocalKeyProvider(TEST_PRIVATE_KEY).request("eth_sendTransaction", [{}])
        assert exc.value.code == 4200


# ── JsonRpcProvider ──────────────────────────────────────────────────


class TestJsonRpcProvider:
    @pytest.mark.asyncio
    async def test_result_is_returned(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            seen.append(body)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [ADDRESS]})

        provider = JsonRpcProvider("http://signer.test/rpc", transport=httpx.MockTransport(handler))
        assert await provider.request("eth_requestAccounts") == [ADDRESS]
        assert seen[0]["method"] == "eth_requestAccounts"
        assert seen[0]["params"] == []

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_user_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": 1, "error": {"code": 4001, "message": "User rejected the request."},
            })

        provider = JsonRpcProvider("http://signer.test/rpc", transport=httpx.MockTransport(handler))
        with pytest.raises(UserRejected):
            await WalletClient(provider).connect()

    @pytest.mark.asyncio
    async def test_unreachable_signer(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = JsonRpcProvider("http://signer.test/rpc", transport=httpx.MockTransport(handler))
        with pytest.raises(WalletError) as exc:
            await WalletClient(provider).connect()
        assert "unreachable" in str(exc.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        "signer locked",
        {"code": "oops", "message": "Signer exploded"},
        {"message": "No code given"},
    ])
    async def test_malformed_rpc_error(self, error):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error})

        provider = JsonRpcProvider("http://signer.test/rpc", transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError) as exc:
            await provider.request("eth_chainId")
        assert exc.value.code == INTERNAL_ERROR
