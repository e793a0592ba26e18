"""
Session manager: the single owner of the authenticated identity.

Wraps the auth provider's sign-up / sign-in / sign-out / recovery calls,
validates credentials before they leave the process, translates provider
errors into user-facing copy and notifies subscribers of session changes.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from schemas import Identity
from services.errors import AuthError, BackendError, ValidationError, friendly_auth_message
from services.rate_limit import SubmitRateLimiter

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 6

SessionListener = Callable[[str, Optional[Identity]], None]


def identity_from_user(user: Dict[str, Any]) -> Identity:
    metadata = user.get("user_metadata") or {}
    return Identity(id=str(user["id"]), email=user.get("email"), full_name=metadata.get("full_name"))


class SessionManager:
    """
    Tracks the current identity and its tokens.

    Args:
        backend: Backend client (auth and profile calls)
        rate_limiter: Debounce for auth form submissions
        password_reset_redirect: URL embedded in password-reset e-mails
    """

    def __init__(
        self,
        backend,
        rate_limiter: Optional[SubmitRateLimiter] = None,
        password_reset_redirect: Optional[str] = None,
    ):
        self._backend = backend
        self.rate_limiter = rate_limiter or SubmitRateLimiter()
        self.password_reset_redirect = password_reset_redirect
        self._listeners: List[SessionListener] = []
        self.identity: Optional[Identity] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.loading = False

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a session-change listener; returns its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        logger.info("Auth event: %s", event)
        for listener in list(self._listeners):
            listener(event, self.identity)

    def _apply_session(self, data: Dict[str, Any], event: str) -> Identity:
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.identity = identity_from_user(data["user"])
        self._emit(event)
        return self.identity

    def _clear(self) -> None:
        self.identity = None
        self.access_token = None
        self.refresh_token = None

    @staticmethod
    def _validate_credentials(email: str, password: str) -> Tuple[str, str]:
        email = (email or "").strip().lower()
        password = (password or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not EMAIL_PATTERN.search(email):
            raise ValidationError("Please enter a valid email address")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return email, password

    # ============== Auth Flows ==============

    async def sign_up(self, email: str, password: str, full_name: str) -> str:
        """
        Create an account.

        Returns:
            Success message for the user

        Raises:
            RateLimitedError, ValidationError, AuthError
        """
        self.rate_limiter.acquire()
        email, password = self._validate_credentials(email, password)
        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required")

        self.loading = True
        try:
            data = await self._backend.sign_up(email, password, full_name)
        except BackendError as e:
            logger.error("Signup error: %s", e.message)
            raise AuthError(friendly_auth_message(e.message), e.status_code) from e
        finally:
            self.loading = False

        # Providers without e-mail confirmation return a session right away
        if data.get("access_token") and data.get("user"):
            self._apply_session(data, SIGNED_IN)
            await self.ensure_profile()
            return "Account created! Welcome aboard."
        return "Account created! Please check your email to verify."

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Password sign-in.

        Returns:
            The signed-in identity

        Raises:
            RateLimitedError, ValidationError, AuthError
        """
        self.rate_limiter.acquire()
        email, password = self._validate_credentials(email, password)

        self.loading = True
        try:
            data = await self._backend.sign_in(email, password)
        except BackendError as e:
            logger.error("Signin error: %s", e.message)
            raise AuthError(friendly_auth_message(e.message), e.status_code) from e
        finally:
            self.loading = False

        identity = self._apply_session(data, SIGNED_IN)
        await self.ensure_profile()
        return identity

    async def sign_out(self) -> None:
        """Drop the session locally even if the provider call fails."""
        token = self.access_token
        try:
            if token:
                await self._backend.sign_out(token)
        except BackendError as e:
            logger.error("Error signing out: %s", e.message)
        finally:
            self._clear()
            self._emit(SIGNED_OUT)

    async def load_session(self) -> Optional[Identity]:
        """
        Re-validate the stored session with the provider.

        The refresh token is used once if the access token was rejected.

        Raises:
            AuthError: If neither token is accepted; the session is cleared
        """
        if not self.access_token:
            return None
        try:
            user = await self._backend.get_user(self.access_token)
            self.identity = identity_from_user(user)
            return self.identity
        except BackendError as e:
            logger.info("Access token rejected (%s); refreshing", e.message)

        try:
            if not self.refresh_token:
                raise AuthError("Session expired")
            data = await self._backend.refresh_session(self.refresh_token)
        except BackendError as e:
            self._clear()
            self._emit(SIGNED_OUT)
            raise AuthError("Failed to load session.", e.status_code) from e
        return self._apply_session(data, TOKEN_REFRESHED)

    async def request_password_reset(self, email: str) -> str:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Please enter your email address")
        try:
            await self._backend.reset_password_for_email(email, self.password_reset_redirect)
        except BackendError as e:
            raise AuthError(e.message or "Failed to send reset email", e.status_code) from e
        return "Password reset email sent! Check your inbox."

    # ============== Profile ==============

    async def ensure_profile(self) -> Optional[Dict[str, Any]]:
        """Create the user's profile row if it is missing; failures are only logged."""
        identity = self.identity
        if identity is None:
            return None
        try:
            profile = await self._backend.get_user_profile(identity.id, access_token=self.access_token)
            if profile is None:
                full_name = identity.full_name or (identity.email or "").split("@")[0] or "User"
                profile = await self._backend.create_user_profile(
                    identity.id, full_name, access_token=self.access_token
                )
                logger.info("User profile created for %s", identity.id)
            return profile
        except BackendError as e:
            logger.error("Profile creation error: %s", e.message)
            return None
