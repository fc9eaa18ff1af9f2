"""
Supabase接続モジュール（HTTP API版）
supabaseパッケージの代わりにhttpxで直接REST APIを呼び出す
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from ..config import SUPABASE_KEY, SUPABASE_URL
from ..errors import CloudStoreError
from ..models import Task, TaskStatus

logger = logging.getLogger(__name__)

TIMEOUT = 10.0


class SupabaseAuth:
    """Supabase認証を管理するクラス（HTTP API版）"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 base_url: str = SUPABASE_URL, api_key: str = SUPABASE_KEY):
        self.base_url = base_url
        self.api_key = api_key
        self._client = client
        self._user = None
        self._access_token = None

    @property
    def is_configured(self) -> bool:
        """Supabaseが設定されているか"""
        return bool(self.base_url and self.api_key)

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def user_id(self) -> Optional[str]:
        """現在のユーザーID"""
        if self._user:
            return self._user.get("id")
        return None

    def _get_headers(self) -> dict:
        return {
            "apikey": self.api_key,
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def sign_in_with_email(self, email: str, password: str) -> dict:
        """Email/Passwordでログイン"""
        if not self.is_configured:
            return {"error": "Supabaseが設定されていません"}

        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(
                f"{self.base_url}/auth/v1/token?grant_type=password",
                headers=self._get_headers(),
                json={"email": email, "password": password},
                timeout=TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.error("ログイン接続エラー: %s", e)
            return {"error": f"接続エラー: {e}"}
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code == 200:
            data = response.json()
            self._access_token = data.get("access_token")
            user_data = data.get("user", {})
            self._user = {
                "id": user_data.get("id"),
                "email": user_data.get("email"),
            }
            return {"success": True}

        error_data = response.json() if response.text else {}
        error_msg = error_data.get("error_description") or error_data.get("msg") or f"エラー({response.status_code})"
        return {"error": error_msg}

    def sign_out(self) -> bool:
        """ログアウト"""
        self._user = None
        self._access_token = None
        return True


class SupabaseDB:
    """
    Supabaseデータベース操作クラス（HTTP API版）

    テーブル:
        tasks         タスク（user_id で検索）
        users         ストリーク記録（id = user_id）
        achievements  獲得済み称号（id = "{user_id}_{achievement_id}"）

    書き込みはすべて部分更新（PATCH）。失敗時は CloudStoreError を送出する。
    """

    def __init__(self, auth: SupabaseAuth, client: Optional[httpx.AsyncClient] = None):
        self.auth = auth
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=TIMEOUT)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, prefer: str = "return=representation") -> dict:
        """APIヘッダーを取得"""
        token = self.auth.access_token or self.auth.api_key
        return {
            "apikey": self.auth.api_key,
            "Content-Type": "application/json",
            "Prefer": prefer,
            "Authorization": f"Bearer {token}",
        }

    async def _request(self, method: str, path: str, params: Dict[str, str] = None,
                       json: Any = None, prefer: str = "return=representation") -> Any:
        if not self.auth.is_configured:
            raise CloudStoreError("Supabaseが設定されていません")

        url = f"{self.auth.base_url}/rest/v1/{path}"
        try:
            response = await self.client.request(
                method, url, params=params, json=json,
                headers=self._get_headers(prefer), timeout=TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise CloudStoreError(f"{method} {path} 接続エラー: {e}") from e

        if response.status_code >= 400:
            raise CloudStoreError(
                f"{method} {path} 失敗({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    # === タスク ===

    async def list_tasks(self, user_id: str) -> List[Task]:
        """ユーザーのタスク一覧（新しい順）"""
        rows = await self._request("GET", "tasks", params={
            "user_id": f"eq.{user_id}",
            "select": "*",
            "order": "created_at.desc",
        })
        return [Task.from_row(row) for row in rows or []]

    async def get_active_task(self, user_id: str) -> Optional[Task]:
        rows = await self._request("GET", "tasks", params={
            "user_id": f"eq.{user_id}",
            "status": f"eq.{TaskStatus.ACTIVE.value}",
            "select": "*",
            "limit": "1",
        })
        return Task.from_row(rows[0]) if rows else None

    async def create_task(self, task: Task) -> Task:
        """タスクを作成（IDはクライアント側で採番）"""
        if task.id is None:
            task.id = str(uuid.uuid4())
        row = task.to_row()
        row["id"] = task.id
        await self._request("POST", "tasks", json=row)
        return task

    async def update_task(self, task_id: str, fields: Dict[str, Any]):
        """タスクの部分更新"""
        await self._request("PATCH", "tasks", params={"id": f"eq.{task_id}"}, json=fields,
                            prefer="return=minimal")

    # === ユーザー（ストリーク） ===

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._request("GET", "users", params={"id": f"eq.{user_id}", "select": "*"})
        return rows[0] if rows else None

    async def create_user(self, user_id: str, fields: Dict[str, Any]):
        row = dict(fields)
        row["id"] = user_id
        await self._request("POST", "users", json=row,
                            prefer="resolution=merge-duplicates,return=minimal")

    async def update_user(self, user_id: str, fields: Dict[str, Any]):
        await self._request("PATCH", "users", params={"id": f"eq.{user_id}"}, json=fields,
                            prefer="return=minimal")

    # === 称号 ===

    async def get_unlock(self, user_id: str, achievement_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._request("GET", "achievements", params={
            "user_id": f"eq.{user_id}",
            "achievement_id": f"eq.{achievement_id}",
            "select": "*",
            "limit": "1",
        })
        return rows[0] if rows else None

    async def insert_unlock(self, row: Dict[str, Any]) -> bool:
        """
        称号を記録（複合IDが既にあれば何もしない）

        Returns:
            実際に挿入された場合 True
        """
        inserted = await self._request(
            "POST", "achievements", params={"on_conflict": "id"}, json=row,
            prefer="resolution=ignore-duplicates,return=representation",
        )
        return bool(inserted)

    async def list_unlocks(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await self._request("GET", "achievements", params={
            "user_id": f"eq.{user_id}",
            "select": "*",
        })
        return rows or []

    async def delete_unlock(self, row_id: str):
        await self._request("DELETE", "achievements", params={"id": f"eq.{row_id}"},
                            prefer="return=minimal")


# シングルトンインスタンス
_auth_instance: Optional[SupabaseAuth] = None
_db_instance: Optional[SupabaseDB] = None


def get_auth() -> SupabaseAuth:
    """認証インスタンスを取得"""
    global _auth_instance
    if _auth_instance is None:
        _auth_instance = SupabaseAuth()
    return _auth_instance


def get_cloud_db() -> SupabaseDB:
    """クラウドDBインスタンスを取得"""
    global _db_instance
    if _db_instance is None:
        _db_instance = SupabaseDB(get_auth())
    return _db_instance
