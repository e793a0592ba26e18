"""
Supabase client for the auth, object storage and table services.
Talks to the GoTrue, Storage and PostgREST HTTP surfaces with httpx.

A single instance is created at process start and passed to the
services that need it.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from services.errors import BackendError

logger = logging.getLogger(__name__)

PROBLEMS_TABLE = "problems"
PROFILES_TABLE = "user_profiles"

# Request timeout in seconds
REQUEST_TIMEOUT = 15.0


def _error_message(response: httpx.Response) -> str:
    """
    Extract a human-readable message from an error response.

    Args:
        response: Non-2xx response from one of the Supabase services

    Returns:
        The service's message, or the HTTP reason phrase
    """
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        for key in ("msg", "error_description", "message", "error"):
            if data.get(key):
                return str(data[key])
    return response.reason_phrase


def _parse_count(content_range: Optional[str]) -> int:
    """Read the total from a PostgREST Content-Range header ("0-0/42" or "*/42")."""
    if not content_range or "/" not in content_range:
        return 0
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class SupabaseClient:
    """
    Thin async client over the Supabase REST APIs.

    Args:
        url: Project URL, e.g. https://xyz.supabase.co
        anon_key: Public anonymous API key
        bucket: Storage bucket for uploaded photos
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        bucket: str = "problem-images",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.bucket = bucket
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url,
            headers={"apikey": self.anon_key},
            timeout=REQUEST_TIMEOUT,
            transport=self._transport,
        )

    def _auth_headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token or self.anon_key}"}

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request and raise BackendError on failure.

        Args:
            method: HTTP method
            path: Path relative to the project URL
            access_token: User access token; the anon key is used when omitted
            headers: Extra headers

        Returns:
            The successful response
        """
        request_headers = self._auth_headers(access_token)
        if headers:
            request_headers.update(headers)
        try:
            async with self._client() as client:
                response = await client.request(method, path, headers=request_headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Backend request timed out: %s %s", method, path)
            raise BackendError("The service did not respond in time. Please try again.") from e
        except httpx.HTTPError as e:
            logger.error("Backend request failed: %s %s: %s", method, path, e)
            raise BackendError(f"Network error: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning("Backend returned %s for %s %s: %s", response.status_code, method, path, message)
            raise BackendError(message, status_code=response.status_code)
        return response

    # ============== Auth ==============

    async def sign_up(self, email: str, password: str, full_name: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"full_name": full_name}},
        )
        return response.json()

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Password grant; returns access_token, refresh_token and user."""
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return response.json()

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return response.json()

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", access_token=access_token)

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        response = await self._request("GET", "/auth/v1/user", access_token=access_token)
        return response.json()

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request("POST", "/auth/v1/recover", params=params, json={"email": email})

    # ============== Storage ==============

    def public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload_image(
        self,
        content: bytes,
        filename: str,
        content_type: str = "image/jpeg",
        access_token: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Upload a photo under a random file name.

        Args:
            content: Raw image bytes
            filename: Original file name, used only for its extension
            content_type: MIME type of the image
            access_token: Optional user token

        Returns:
            Dictionary with the stored path and its public URL
        """
        extension = filename.rsplit(".", 1)[-1] if filename and "." in filename else "jpg"
        path = f"{uuid.uuid4().hex}.{extension}"
        await self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            access_token=access_token,
            headers={"Content-Type": content_type},
            content=content,
        )
        return {"path": path, "public_url": self.public_url(path)}

    # ============== Tables ==============

    async def create_problem(self, row: Dict[str, Any], access_token: Optional[str] = None) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/rest/v1/{PROBLEMS_TABLE}",
            access_token=access_token,
            headers={"Prefer": "return=representation"},
            json=[{**row, "votes": 0}],
        )
        rows = response.json()
        return rows[0] if rows else {}

    async def get_problems(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Fetch the newest problems first."""
        response = await self._request(
            "GET",
            f"/rest/v1/{PROBLEMS_TABLE}",
            params={"select": "*", "order": "created_at.desc", "limit": limit},
        )
        return response.json()

    async def increment_votes(self, problem_id: str, access_token: Optional[str] = None) -> None:
        await self._request(
            "POST",
            "/rest/v1/rpc/increment_votes",
            access_token=access_token,
            json={"problem_id": problem_id},
        )

    async def create_user_profile(
        self, user_id: str, full_name: Optional[str] = None, access_token: Optional[str] = None
    ) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/rest/v1/{PROFILES_TABLE}",
            access_token=access_token,
            headers={"Prefer": "return=representation"},
            json=[{"user_id": user_id, "full_name": full_name, "points": 0}],
        )
        rows = response.json()
        return rows[0] if rows else {}

    async def get_user_profile(self, user_id: str, access_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the profile row, or None when the user has none yet."""
        response = await self._request(
            "GET",
            f"/rest/v1/{PROFILES_TABLE}",
            access_token=access_token,
            params={"select": "*", "user_id": f"eq.{user_id}", "limit": 1},
        )
        rows = response.json()
        return rows[0] if rows else None

    async def add_user_points(self, user_id: str, points: int, access_token: Optional[str] = None) -> None:
        await self._request(
            "POST",
            "/rest/v1/rpc/add_user_points",
            access_token=access_token,
            json={"user_id": user_id, "points": points},
        )

    async def count(self, table: str, **filters: str) -> int:
        """
        Exact row count of a table, optionally filtered by equality.

        Args:
            table: Table name
            **filters: column=value equality filters

        Returns:
            Number of matching rows
        """
        params = {"select": "id"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        response = await self._request(
            "HEAD",
            f"/rest/v1/{table}",
            params=params,
            headers={"Prefer": "count=exact", "Range": "0-0"},
        )
        return _parse_count(response.headers.get("content-range"))
