# auth.py
"""Username/password accounts and HS256 bearer tokens."""
import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional, Tuple

from errors import ApiError, TokenError
from store import KeyValueStore

logger = logging.getLogger("baymax.auth")

TOKEN_SUFFIX = "_token"


def hash_password(password: str, salt: Optional[str] = None, iterations: int = 100_000) -> Tuple[str, str]:
    salt = salt or secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return dk.hex(), salt


def verify_password(password: str, stored: str) -> bool:
    try:
        stored_hash, salt = stored.split(":")
    except ValueError:
        return False
    dk, _ = hash_password(password, salt=salt)
    return secrets.compare_digest(dk, stored_hash)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _json_segment(obj: Dict[str, Any]) -> str:
    return _b64url(json.dumps(obj, separators=(",", ":"), sort_keys=True).encode())


def bearer_token(header: Optional[str]) -> Optional[str]:
    if header and header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


class TokenService:
    def __init__(self, secret: str, expiry: int, refresh_threshold: int,
                 clock: Callable[[], float] = time.time) -> None:
        self._secret = secret
        self.expiry = expiry
        self.refresh_threshold = refresh_threshold
        self._clock = clock

    def _key(self) -> bytes:
        if not self._secret:
            raise RuntimeError("ISSUER_SECRET not configured")
        return self._secret.encode("utf-8")

    def issue(self, username: str) -> str:
        now = int(self._clock())
        header = {"alg": "HS256", "typ": "JWT"}
        claims = {"sub": username, "iat": now, "exp": now + self.expiry, "jti": secrets.token_hex(8)}
        signing_input = _json_segment(header) + "." + _json_segment(claims)
        signature = hmac.new(self._key(), signing_input.encode("utf-8"), hashlib.sha256).digest()
        return signing_input + "." + _b64url(signature)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise TokenError("malformed token")
        signing_input = header_b64 + "." + payload_b64
        expected = hmac.new(self._key(), signing_input.encode("utf-8"), hashlib.sha256).digest()
        try:
            signature = _b64url_decode(sig_b64)
            header = json.loads(_b64url_decode(header_b64))
            claims = json.loads(_b64url_decode(payload_b64))
        except ValueError:
            raise TokenError("malformed token")
        if not hmac.compare_digest(expected, signature):
            raise TokenError("invalid signature")
        if not isinstance(header, dict) or header.get("alg") != "HS256" or not isinstance(claims, dict):
            raise TokenError("unsupported token")
        if not isinstance(claims.get("sub"), str) or not claims["sub"]:
            raise TokenError("invalid token payload")
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp <= self._clock():
            raise TokenError("token expired")
        return claims

    def needs_refresh(self, claims: Dict[str, Any]) -> bool:
        return self._clock() + self.refresh_threshold > claims["exp"]


class AuthService:
    """Accounts live in the user store as ``username -> "<hash>:<salt>"``.

    The most recently issued token for each user is kept under
    ``<username>_token`` and a presented token must match it, so a fresh
    login or a silent refresh supersedes every older token.
    """

    def __init__(self, store: KeyValueStore, tokens: TokenService) -> None:
        self.store = store
        self.tokens = tokens

    def _issue(self, username: str) -> str:
        token = self.tokens.issue(username)
        self.store.put(f"{username}{TOKEN_SUFFIX}", token)
        return token

    def signup(self, username: str, password: str) -> str:
        if username.endswith(TOKEN_SUFFIX):
            raise ApiError(400, "Invalid username")
        if self.store.get(username):
            raise ApiError(409, "Username already exists")
        # nothing is written unless signing succeeds
        token = self.tokens.issue(username)
        pwd_hash, salt = hash_password(password)
        self.store.put(username, f"{pwd_hash}:{salt}")
        self.store.put(f"{username}{TOKEN_SUFFIX}", token)
        logger.info("Signed up user=%s", username)
        return token

    def login(self, username: str, password: str) -> str:
        stored = self.store.get(username)
        if not stored or not verify_password(password, stored):
            logger.info("Rejected login for user=%s", username)
            raise ApiError(401, "Invalid credentials")
        return self._issue(username)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            claims = self.tokens.decode(token)
        except TokenError as exc:
            logger.info("Rejected token: %s", exc)
            raise ApiError(401, "Invalid or expired token")
        if self.store.get(f"{claims['sub']}{TOKEN_SUFFIX}") != token:
            raise ApiError(401, "Token revoked")
        return claims

    def authenticate(self, token: str) -> Tuple[str, Optional[str]]:
        """Return the token's user and a replacement token if it is close to expiry."""
        claims = self.verify(token)
        username = claims["sub"]
        refresh = None
        if self.tokens.needs_refresh(claims):
            refresh = self._issue(username)
            logger.info("Refreshed token for user=%s", username)
        return username, refresh
