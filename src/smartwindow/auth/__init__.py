"""Authentication: Credential Store, Token Ledger and Session Gate."""

from smartwindow.auth.dependencies import require_admin, require_user
from smartwindow.auth.gate import Identity, SessionGate
from smartwindow.auth.ledger import TokenLedger, hash_token

__all__ = [
    "Identity",
    "SessionGate",
    "TokenLedger",
    "hash_token",
    "require_admin",
    "require_user",
]
