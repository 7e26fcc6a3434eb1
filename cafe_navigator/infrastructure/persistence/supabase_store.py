"""
Supabase (PostgREST) Stores
===========================
httpx 기반 Supabase REST 클라이언트

## 구성
- SupabaseVectorStore: knowledge_base 테이블 + search_knowledge_base RPC
- SupabaseMemoryStore: agent_memory 테이블 (expires_at 컬럼으로 TTL)

## 환경변수
- SUPABASE_URL: 프로젝트 URL
- SUPABASE_SERVICE_ROLE_KEY: 서비스 롤 키

스키마 생성은 이 모듈의 범위가 아닙니다 (테이블/RPC는 이미 존재한다고 가정).
"""

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from cafe_navigator.domain.exceptions import (
    MemoryStoreError,
    RpcUnavailableError,
    VectorStoreError,
)

logger = logging.getLogger(__name__)

SEARCH_RPC = "search_knowledge_base"
KNOWLEDGE_TABLE = "knowledge_base"
MEMORY_TABLE = "agent_memory"


class _SupabaseClient:
    """PostgREST 공통 요청 처리"""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = url.rstrip("/")
        self._service_key = service_key
        self.timeout = timeout
        self._client = client

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        return await client.request(
            method,
            f"{self.base_url}/rest/v1/{path}",
            params=params,
            json=body,
            headers=self._headers(prefer),
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


def _parse_embedding(raw: Any) -> list[float] | None:
    """content_embedding 컬럼 파싱 (pgvector는 문자열 "[0.1,...]"로 내려옴)"""
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Unparseable content_embedding value, skipping")
            return None
    return [float(v) for v in raw]


class SupabaseVectorStore(_SupabaseClient):
    """
    Supabase 지식 코퍼스

    Usage:
        store = SupabaseVectorStore(url, service_key)
        rows = await store.search_similar(vector, threshold=0.3, count=25)
    """

    async def search_similar(
        self, vector: list[float], threshold: float, count: int
    ) -> list[dict[str, Any]]:
        body = {
            "query_embedding": vector,
            "similarity_threshold": threshold,
            "match_count": count,
        }
        try:
            response = await self.request("POST", f"rpc/{SEARCH_RPC}", body=body)
        except httpx.HTTPError as e:
            raise VectorStoreError(
                f"RPC request failed: {e}", operation="search_similar"
            ) from e

        if response.status_code == 404:
            raise RpcUnavailableError(
                f"RPC {SEARCH_RPC} not found", operation="search_similar", status_code=404
            )
        if response.status_code >= 400:
            raise VectorStoreError(
                f"RPC {SEARCH_RPC} failed: {response.text[:200]}",
                operation="search_similar",
                status_code=response.status_code,
            )

        try:
            rows = response.json()
        except ValueError as e:
            raise VectorStoreError(
                f"Malformed RPC response: {e}", operation="search_similar"
            ) from e
        return rows or []

    async def list_entries(
        self, language: str, category: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"select": "*", "language": f"eq.{language}"}
        if category:
            params["category"] = f"eq.{category}"

        try:
            response = await self.request("GET", KNOWLEDGE_TABLE, params=params)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            raise VectorStoreError(
                f"Table read failed: {e.response.text[:200]}",
                operation="list_entries",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise VectorStoreError(f"Table read failed: {e}", operation="list_entries") from e

        for row in rows:
            row["embedding"] = _parse_embedding(row.pop("content_embedding", row.get("embedding")))
        return rows


class SupabaseMemoryStore(_SupabaseClient):
    """
    Supabase agent_memory 테이블 기반 MemoryStore

    - value는 JSON 컬럼
    - expires_at NULL은 영구 보존 (promotion 경로)
    - 만료 판정은 읽기 시점에 수행 (DB 측 정리는 외부 잡 담당)
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(url, service_key, timeout=timeout, client=client)
        self._clock = clock

    @staticmethod
    def _to_iso(epoch_seconds: float) -> str:
        return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()

    async def get(self, key: str) -> Any | None:
        params = {"select": "value,expires_at", "key": f"eq.{key}", "limit": "1"}
        try:
            response = await self.request("GET", MEMORY_TABLE, params=params)
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MemoryStoreError(f"Failed to read memory key: {e}", key=key) from e

        if not rows:
            return None
        row = rows[0]
        expires_at = row.get("expires_at")
        if expires_at:
            expiry = datetime.fromisoformat(expires_at.replace("Z", "+00:00")).timestamp()
            if expiry <= self._clock():
                return None
        return row.get("value")

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        now = self._clock()
        row = {
            "key": key,
            "value": value,
            "expires_at": self._to_iso(now + ttl_seconds) if ttl_seconds is not None else None,
            "updated_at": self._to_iso(now),
        }
        try:
            response = await self.request(
                "POST",
                MEMORY_TABLE,
                params={"on_conflict": "key"},
                body=row,
                prefer="resolution=merge-duplicates",
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MemoryStoreError(f"Failed to write memory key: {e}", key=key) from e

    async def delete(self, key: str) -> None:
        try:
            response = await self.request("DELETE", MEMORY_TABLE, params={"key": f"eq.{key}"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MemoryStoreError(f"Failed to delete memory key: {e}", key=key) from e
