# auth.py
# Magic-link auth on top of Supabase Auth (GoTrue REST API).
#
# SupabaseAuthClient  -> thin HTTP wrapper around /auth/v1 endpoints (requests)
# AuthSession         -> the "current user" context: user / loading / is_authenticated,
#                        sign_in_with_email, complete_sign_in, sign_out, subscribe
# get_user_from_token -> verifies the bearer JWT the frontend sends (PyJWT + JWKS)
import base64
import hashlib
import logging
import secrets
from functools import lru_cache
from urllib.parse import parse_qs, urlparse

import jwt  # PyJWT: decodes and verifies JWT tokens
import requests
from jwt import PyJWKClient  # Fetches public keys from Supabase's JWKS endpoint

from config import Settings, get_settings
from errors import AuthenticationError, BackendError, ValidationError
from logging_utils import secure_error, secure_log
from validation import is_institutional_email

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15  # seconds


def _pkce_pair() -> tuple[str, str]:
    """(code_verifier, code_challenge) for the PKCE flow, S256 method."""
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


class SupabaseAuthClient:
    """Calls the hosted auth provider. Every failure comes out as an AppError."""

    def __init__(self, settings: Settings | None = None, http: requests.Session | None = None):
        self.settings = settings or get_settings()
        self.http = http or requests.Session()
        self.base_url = f"{self.settings.supabase_url}/auth/v1"

    def _headers(self, access_token: str | None = None) -> dict:
        return {
            "apikey": self.settings.supabase_anon_key,
            "Authorization": f"Bearer {access_token or self.settings.supabase_anon_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, *, json=None, params=None, access_token=None) -> dict:
        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=self._headers(access_token),
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            secure_error(logger, f"[AUTH] {method} {path} failed with {status}", e)
            # 4xx here = bad/expired link or token, the user has to request a new one
            if status is not None and 400 <= status < 500:
                raise AuthenticationError("Link de acesso inválido ou expirado. Solicite um novo.") from e
            raise BackendError("Serviço de autenticação indisponível. Tente novamente.") from e
        except requests.exceptions.RequestException as e:
            secure_error(logger, f"[AUTH] {method} {path} failed", e)
            raise BackendError("Serviço de autenticação indisponível. Tente novamente.") from e

        if not response.content:
            return {}
        return response.json()

    def send_magic_link(self, email: str, redirect_to: str, code_challenge: str) -> dict:
        # create_user: any UERJ student gets an account on first login
        return self._request(
            "POST",
            "/otp",
            params={"redirect_to": redirect_to},
            json={
                "email": email,
                "create_user": True,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            },
        )

    def verify_otp(self, token_hash: str, otp_type: str) -> dict:
        return self._request("POST", "/verify", json={"token_hash": token_hash, "type": otp_type})

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> dict:
        return self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )

    def get_user(self, access_token: str) -> dict:
        return self._request("GET", "/user", access_token=access_token)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token)


class AuthSession:
    """Explicit session context for one user/browser.

    Holds the current session, tells subscribers when it changes
    (INITIAL_SESSION, SIGNED_IN, SIGNED_OUT), and never creates a session
    synchronously on sign-in: that only happens once the emailed link
    comes back through complete_sign_in().
    """

    def __init__(self, client: SupabaseAuthClient, settings: Settings | None = None):
        self.client = client
        self.settings = settings or client.settings
        self.session: dict | None = None
        self.user: dict | None = None
        self.loading = True
        self.code_verifier: str | None = None
        self._listeners = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def subscribe(self, callback):
        """callback(event, session). Returns a function that unsubscribes it."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def close(self):
        self._listeners.clear()

    def _set_session(self, event: str, session: dict | None):
        self.session = session
        self.user = session.get("user") if session else None
        self.loading = False
        secure_log(logger, "[AUTH] Auth state change", {"event": event, "has_user": self.user is not None})
        for callback in list(self._listeners):
            callback(event, session)

    def initialize(self, stored_session: dict | None = None):
        """Load the current session once (e.g. from a cookie) and check it's still valid."""
        secure_log(logger, "[AUTH] Initializing auth")
        session = None
        if stored_session and stored_session.get("access_token"):
            try:
                user = self.client.get_user(stored_session["access_token"])
                session = {**stored_session, "user": user}
            except (AuthenticationError, BackendError) as e:
                # Expired/invalid token just means "signed out"
                secure_error(logger, "[AUTH] Error getting session", e)
        self._set_session("INITIAL_SESSION", session)
        return session

    def sign_in_with_email(self, email: str) -> dict:
        """Send a magic link. Only @graduacao.uerj.br addresses, checked before any network call."""
        email = (email or "").strip().lower()
        if not is_institutional_email(email):
            raise ValidationError("Use seu email institucional @graduacao.uerj.br")

        secure_log(logger, "[AUTH] Sending magic link", {"email": email})
        verifier, challenge = _pkce_pair()
        data = self.client.send_magic_link(email, self.settings.auth_callback_url, challenge)
        # kept for the code exchange when the link comes back
        self.code_verifier = verifier
        secure_log(logger, "[AUTH] Magic link sent")
        return data

    def complete_sign_in(self, url: str, code_verifier: str | None = None) -> dict | None:
        """Finish the magic link from the URL the provider redirected to.

        Handles the three shapes the provider may use:
        ?code=...                       (PKCE code exchange)
        ?token_hash=...&type=magiclink  (OTP verification)
        #access_token=...&refresh_token=...  (implicit tokens in the fragment)
        Returns None when the URL has no auth parameters.
        """
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        fragment = {k: v[0] for k, v in parse_qs(parsed.fragment).items()}

        if query.get("token_hash") and query.get("type"):
            secure_log(logger, "[AUTH] Processing magic link token hash")
            session = self.client.verify_otp(query["token_hash"], query["type"])
        elif query.get("code"):
            verifier = code_verifier or self.code_verifier
            if not verifier:
                raise AuthenticationError("Sessão de login não encontrada. Solicite um novo link.")
            secure_log(logger, "[AUTH] Processing PKCE code")
            session = self.client.exchange_code_for_session(query["code"], verifier)
            self.code_verifier = None
        elif fragment.get("access_token") and fragment.get("refresh_token"):
            secure_log(logger, "[AUTH] Processing tokens from URL fragment")
            user = self.client.get_user(fragment["access_token"])
            session = {
                "access_token": fragment["access_token"],
                "refresh_token": fragment["refresh_token"],
                "token_type": fragment.get("token_type", "bearer"),
                "expires_in": int(fragment["expires_in"]) if fragment.get("expires_in") else None,
                "user": user,
            }
        else:
            secure_log(logger, "[AUTH] No auth parameters in redirect URL")
            return None

        if not session or not session.get("access_token"):
            raise AuthenticationError("Não foi possível estabelecer a sessão.")

        self._set_session("SIGNED_IN", session)
        return session

    def sign_out(self):
        secure_log(logger, "[AUTH] Signing out")
        if self.session and self.session.get("access_token"):
            self.client.sign_out(self.session["access_token"])
        self._set_session("SIGNED_OUT", None)
        secure_log(logger, "[AUTH] Signed out")


# ──────────────────────────────────────────────────────────────
# Bearer token verification (API requests)
# ──────────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def get_jwks_client() -> PyJWKClient:
    # Supabase publishes the project's public signing keys here
    return PyJWKClient(f"{get_settings().supabase_url}/auth/v1/.well-known/jwks.json")


def get_user_from_token(authorization: str | None, jwks_client: PyJWKClient | None = None) -> dict | None:
    """
    Verify the Supabase JWT in an "Authorization: Bearer <jwt>" header.
    Returns {"id", "email"} or None when there's no token or it's invalid.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1]

    try:
        # 1) public key matching the token's "kid"
        signing_key = (jwks_client or get_jwks_client()).get_signing_key_from_jwt(token)
        # 2) newer Supabase projects sign with ES256; audience "authenticated" = logged-in user
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256", "RS256"],
            audience="authenticated",
        )
    except jwt.exceptions.PyJWTError as e:
        secure_error(logger, "[AUTH] JWT decode error", e)
        return None

    if not payload.get("sub"):
        return None
    return {"id": payload["sub"], "email": payload.get("email")}
