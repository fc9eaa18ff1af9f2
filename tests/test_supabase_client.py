"""Supabase REST client tests against httpx.MockTransport."""
import asyncio
import json

import httpx
import pytest

from pomo_tasker.cloud.supabase_client import SupabaseAuth, SupabaseDB
from pomo_tasker.errors import CloudStoreError
from pomo_tasker.models import Task, TaskStatus

BASE_URL = "https://example.supabase.co"


def run(coro):
    return asyncio.run(coro)


class Backend:
    """Records requests and answers with a canned response."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)


def make_db(backend, configured=True):
    auth = SupabaseAuth(base_url=BASE_URL if configured else "", api_key="anon-key")
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return SupabaseDB(auth, client=client)


async def call(db, method, *args):
    try:
        return await getattr(db, method)(*args)
    finally:
        await db.aclose()


class TestTasks:
    def test_list_tasks_filters_by_user(self):
        backend = Backend(body=[{"id": "t1", "title": "Essay", "duration": 25, "status": "completed",
                                 "user_id": "user-1", "completed_at": 5}])
        tasks = run(call(make_db(backend), "list_tasks", "user-1"))

        request = backend.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/tasks"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.url.params["order"] == "created_at.desc"
        assert request.headers["apikey"] == "anon-key"
        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[0].completed_at == 5

    def test_get_active_task_none(self):
        backend = Backend(body=[])
        assert run(call(make_db(backend), "get_active_task", "user-1")) is None
        assert backend.requests[0].url.params["status"] == "eq.active"

    def test_create_task_assigns_id(self):
        backend = Backend(status_code=201, body=[{}])
        task = Task(title="Essay", duration=30, created_at=1, status=TaskStatus.ACTIVE, user_id="user-1")
        created = run(call(make_db(backend), "create_task", task))

        sent = json.loads(backend.requests[0].content)
        assert created.id
        assert sent["id"] == created.id
        assert sent["status"] == "active"
        assert "subject_id" not in sent

    def test_update_task_is_partial_patch(self):
        backend = Backend(status_code=204)
        run(call(make_db(backend), "update_task", "t1", {"status": "completed", "completed_at": 9}))

        request = backend.requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.t1"
        assert json.loads(request.content) == {"status": "completed", "completed_at": 9}
        assert request.headers["Prefer"] == "return=minimal"


class TestUnlocks:
    def test_insert_unlock_uses_composite_id_and_ignores_duplicates(self):
        backend = Backend(status_code=201, body=[{"id": "user-1_streak_3"}])
        row = {"id": "user-1_streak_3", "achievement_id": "streak_3", "user_id": "user-1"}
        assert run(call(make_db(backend), "insert_unlock", row)) is True

        request = backend.requests[0]
        assert request.url.params["on_conflict"] == "id"
        assert "resolution=ignore-duplicates" in request.headers["Prefer"]

    def test_insert_unlock_conflict_returns_false(self):
        backend = Backend(status_code=201, body=[])
        row = {"id": "user-1_streak_3", "achievement_id": "streak_3", "user_id": "user-1"}
        assert run(call(make_db(backend), "insert_unlock", row)) is False

    def test_get_unlock_filters_pair(self):
        backend = Backend(body=[])
        assert run(call(make_db(backend), "get_unlock", "user-1", "focus_60")) is None
        params = backend.requests[0].url.params
        assert params["user_id"] == "eq.user-1"
        assert params["achievement_id"] == "eq.focus_60"


class TestErrors:
    def test_http_error_status_raises(self):
        backend = Backend(status_code=500, body={"message": "boom"})
        with pytest.raises(CloudStoreError) as excinfo:
            run(call(make_db(backend), "get_user", "user-1"))
        assert excinfo.value.status_code == 500

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        db = make_db(handler)
        with pytest.raises(CloudStoreError):
            run(call(db, "list_unlocks", "user-1"))

    def test_unconfigured_raises_without_request(self):
        backend = Backend(body=[])
        with pytest.raises(CloudStoreError):
            run(call(make_db(backend, configured=False), "list_tasks", "user-1"))
        assert backend.requests == []


class TestAuth:
    def test_sign_in_success(self):
        backend = Backend(body={"access_token": "jwt", "user": {"id": "user-1", "email": "a@b.c"}})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as client:
                auth = SupabaseAuth(client=client, base_url=BASE_URL, api_key="anon-key")
                result = await auth.sign_in_with_email("a@b.c", "secret")
                return auth, result

        auth, result = run(scenario())
        assert result == {"success": True}
        assert auth.user_id == "user-1"
        assert auth.access_token == "jwt"
        assert backend.requests[0].url.params["grant_type"] == "password"

    def test_sign_in_failure_message(self):
        backend = Backend(status_code=400, body={"error_description": "Invalid login credentials"})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as client:
                auth = SupabaseAuth(client=client, base_url=BASE_URL, api_key="anon-key")
                return auth, await auth.sign_in_with_email("a@b.c", "wrong")

        auth, result = run(scenario())
        assert result == {"error": "Invalid login credentials"}
        assert not auth.is_authenticated

    def test_unconfigured_sign_in(self):
        auth = SupabaseAuth(base_url="", api_key="")
        assert "error" in run(auth.sign_in_with_email("a@b.c", "x"))

    def test_db_uses_access_token_after_sign_in(self):
        auth = SupabaseAuth(base_url=BASE_URL, api_key="anon-key")
        auth._access_token = "jwt"
        db = SupabaseDB(auth)
        assert db._get_headers()["Authorization"] == "Bearer jwt"
