"""
Shared fixtures: an in-memory stand-in for the backend client and an
application wired to it with all artificial delays set to zero.
"""

import pytest
from fastapi.testclient import TestClient

from database import Settings
from main import create_app
from services.errors import BackendError


class FakeBackend:
    """In-memory backend exposing the same coroutine methods as SupabaseClient."""

    def __init__(self):
        self.calls = []
        self.users = {}
        self.tokens = {}
        self.profiles = {}
        self.problems = []
        self.uploads = []
        self.voted = []
        self.fail_votes = False
        self.fail_fetch = False
        self.fail_counts = False

    def _user(self, record):
        return {"id": record["id"], "email": record["email"], "user_metadata": {"full_name": record["full_name"]}}

    # --- auth ---
    async def sign_up(self, email, password, full_name):
        self.calls.append("sign_up")
        if email in self.users:
            raise BackendError("User already registered", 422)
        record = {"id": f"user-{len(self.users) + 1}", "email": email, "password": password, "full_name": full_name}
        self.users[email] = record
        return {"user": self._user(record)}

    async def sign_in(self, email, password):
        self.calls.append("sign_in")
        record = self.users.get(email)
        if record is None or record["password"] != password:
            raise BackendError("Invalid login credentials", 400)
        token = f"token-{record['id']}"
        self.tokens[token] = record
        return {"access_token": token, "refresh_token": f"refresh-{record['id']}", "user": self._user(record)}

    async def refresh_session(self, refresh_token):
        self.calls.append("refresh_session")
        for record in self.users.values():
            if refresh_token == f"refresh-{record['id']}":
                token = f"token2-{record['id']}"
                self.tokens[token] = record
                return {"access_token": token, "refresh_token": refresh_token, "user": self._user(record)}
        raise BackendError("Invalid Refresh Token", 400)

    async def sign_out(self, access_token):
        self.calls.append("sign_out")
        self.tokens.pop(access_token, None)

    async def get_user(self, access_token):
        self.calls.append("get_user")
        record = self.tokens.get(access_token)
        if record is None:
            raise BackendError("invalid JWT", 401)
        return self._user(record)

    async def reset_password_for_email(self, email, redirect_to=None):
        self.calls.append("reset_password_for_email")

    # --- storage ---
    async def upload_image(self, content, filename, content_type="image/jpeg", access_token=None):
        self.calls.append("upload_image")
        path = f"{len(self.uploads) + 1}.jpg"
        self.uploads.append((path, content))
        return {"path": path, "public_url": f"http://test/storage/v1/object/public/problem-images/{path}"}

    # --- tables ---
    async def get_problems(self, limit=50):
        self.calls.append("get_problems")
        if self.fail_fetch:
            raise BackendError("connection refused")
        return list(self.problems[:limit])

    async def create_problem(self, row, access_token=None):
        self.calls.append("create_problem")
        self.problems.insert(0, dict(row, votes=0))
        return self.problems[0]

    async def increment_votes(self, problem_id, access_token=None):
        self.calls.append("increment_votes")
        if self.fail_votes:
            raise BackendError("network down")
        if not any(row.get("id") == problem_id for row in self.problems):
            raise BackendError("Problem not found", 404)
        self.voted.append(problem_id)

    async def get_user_profile(self, user_id, access_token=None):
        self.calls.append("get_user_profile")
        return self.profiles.get(user_id)

    async def create_user_profile(self, user_id, full_name=None, access_token=None):
        self.calls.append("create_user_profile")
        self.profiles[user_id] = {"user_id": user_id, "full_name": full_name, "points": 0}
        return self.profiles[user_id]

    async def add_user_points(self, user_id, points, access_token=None):
        self.calls.append("add_user_points")
        self.profiles.setdefault(user_id, {"user_id": user_id, "full_name": None, "points": 0})
        self.profiles[user_id]["points"] += points

    async def count(self, table, **filters):
        self.calls.append("count")
        if self.fail_counts:
            raise BackendError("count failed")
        if table == "user_profiles":
            return len(self.profiles)
        rows = [r for r in self.problems if all(r.get(k) == v for k, v in filters.items())]
        return len(rows)


def make_settings(**overrides):
    values = dict(
        supabase_url="http://test",
        supabase_anon_key="anon-key",
        analysis_delay=0,
        submit_delay=0,
        reset_delay=0,
        submit_interval=2.0,
        geolocation_timeout=0.05,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def client(backend, settings):
    app = create_app(settings, backend=backend)
    return TestClient(app)


@pytest.fixture
def draft_payload():
    return {
        "title": "Pothole on Elm Street",
        "description": "Wide pothole in the left lane.",
        "location": "12 Elm St",
        "category": "Pothole",
        "priority": "High",
    }
