"""
ローカル永続ストア（プロセス再起動後も残るキー・バリュー）
"""
import asyncio
import sqlite3
from typing import Optional

from .config import DB_PATH
from .errors import LocalStoreError


class LocalStore:
    """SQLiteベースのキー・バリューストア"""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self.init_database()

    def get_connection(self):
        """データベース接続を取得"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self):
        """テーブルの初期化"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
        conn.close()

    # ===== 同期API =====

    def _get(self, key: str) -> Optional[str]:
        conn = self.get_connection()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"読み込み失敗 ({key}): {e}") from e
        finally:
            conn.close()
        return row["value"] if row else None

    def _set(self, key: str, value: str):
        conn = self.get_connection()
        try:
            conn.execute("""
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """, (key, value))
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"書き込み失敗 ({key}): {e}") from e
        finally:
            conn.close()

    def _remove(self, *keys: str):
        conn = self.get_connection()
        try:
            conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"削除失敗 ({', '.join(keys)}): {e}") from e
        finally:
            conn.close()

    # ===== 非同期API（イベントループをブロックしない） =====

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set_item(self, key: str, value: str):
        await asyncio.to_thread(self._set, key, value)

    async def remove_items(self, *keys: str):
        """複数キーをまとめて削除"""
        await asyncio.to_thread(self._remove, *keys)
