"""Sign in with a wallet: connect, fetch challenge, sign, verify, log in."""

from __future__ import annotations

from tradeboard.gateway.auth import AuthGateway
from tradeboard.gateway.models import AuthResult
from tradeboard.observability.logger import get_logger
from tradeboard.session.manager import SessionManager
from tradeboard.wallet.client import WalletClient

log = get_logger(__name__)


async def sign_in_with_wallet(
    session: SessionManager,
    gateway: AuthGateway,
    wallet: WalletClient,
    chain: str = "ethereum",
) -> AuthResult:
    """Run the challenge/response login and hand the token to ``session``.

    Errors from any step (WalletError, GatewayError) propagate unchanged;
    nothing is retried.
    """
    connection = await wallet.connect()
    challenge = await gateway.request_nonce(connection.address)
    signature = await wallet.sign(challenge.message)
    result = await gateway.verify_wallet_signature(
        connection.address, signature, challenge.message, chain,
    )
    await session.login(result.access_token)
    log.info("wallet_login.completed", wallet=connection.address[:10], new_user=result.is_new_user)
    return result
