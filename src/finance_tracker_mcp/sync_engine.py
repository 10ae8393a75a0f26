"""Sync engine pulling a read-only snapshot from the hosted Supabase (PostgREST) backend."""

import logging
import time
from typing import Any

import httpx

from .database import Database


logger = logging.getLogger(__name__)

PAGE_SIZE = 1000

# Remote table names mapped to database upsert methods and local table names
ENTITY_MAPPING = {
    "cuentas": ("upsert_accounts", "accounts"),
    "categorias": ("upsert_categories", "categories"),
    "transacciones": ("upsert_transactions", "transactions"),
}


class SyncError(Exception):
    """Error during synchronization with the hosted backend."""

    pass


class SyncEngine:
    """Synchronization engine for the finance snapshot."""

    def __init__(self, db: Database, base_url: str, api_key: str):
        """Initialize sync engine.

        Args:
            db: Database instance for storing synced data.
            base_url: Supabase project URL, e.g. https://xyz.supabase.co
            api_key: Supabase anon key or user access token.
        """
        self.db = db
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    @property
    def headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def sync(self, force_full: bool = False) -> dict[str, Any]:
        """Perform synchronization with the backend.

        Args:
            force_full: If True, drop the local snapshot and fetch everything.
                        If False, fetch rows changed since the last sync and
                        drop cached rows whose ids no longer exist remotely.

        Returns:
            Dictionary with sync results including updated and deleted counts.

        Raises:
            SyncError: If an API request fails.
        """
        start_time = time.time()
        logger.info("Starting %s sync", "full" if force_full else "incremental")

        snapshot: dict[str, list[dict[str, Any]]] = {}
        remote_ids: dict[str, set[str]] = {}
        async with httpx.AsyncClient() as client:
            for remote_table, (_, table_name) in ENTITY_MAPPING.items():
                since = None if force_full else self.db.get_sync_cursor(table_name)
                snapshot[remote_table] = await self._fetch_table(client, remote_table, since)
                if not force_full:
                    id_rows = await self._fetch_table(
                        client, remote_table, None, select="id", order="id.asc"
                    )
                    remote_ids[table_name] = {row["id"] for row in id_rows}

        if force_full:
            for _, table_name in ENTITY_MAPPING.values():
                self.db.clear_table(table_name)

        result = self._apply_snapshot(snapshot)
        result["deleted"] = self._remove_missing(remote_ids)
        self.db.set_meta("last_sync_time", str(int(time.time())))

        result["full"] = force_full
        result["sync_duration_ms"] = int((time.time() - start_time) * 1000)
        result["status"] = "synced"
        logger.info("Sync finished: updated %s, deleted %s", result["updated"], result["deleted"])
        return result

    async def _fetch_table(
        self,
        client: httpx.AsyncClient,
        remote_table: str,
        since: str | None,
        select: str = "*",
        order: str = "updated_at.asc",
    ) -> list[dict[str, Any]]:
        """Fetch all rows of a remote table, page by page."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            params = {
                "select": select,
                "order": order,
                "limit": str(PAGE_SIZE),
                "offset": str(offset),
            }
            if since:
                params["updated_at"] = f"gt.{since}"

            try:
                response = await client.get(
                    f"{self.base_url}/rest/v1/{remote_table}",
                    params=params,
                    headers=self.headers,
                    timeout=60.0,
                )
            except httpx.HTTPError as e:
                raise SyncError(f"HTTP error during sync of {remote_table}: {e}") from e

            if response.status_code != 200:
                raise SyncError(
                    f"API returned status {response.status_code} for {remote_table}: {response.text}"
                )

            try:
                page = response.json()
            except ValueError as e:
                raise SyncError(f"Invalid JSON response for {remote_table}: {e}") from e

            if not isinstance(page, list):
                raise SyncError(f"Unexpected payload for {remote_table}: {type(page).__name__}")

            rows.extend(page)
            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        logger.debug("Fetched %d rows from %s", len(rows), remote_table)
        return rows

    def _apply_snapshot(self, snapshot: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
        """Upsert fetched rows and advance the per-table cursors.

        Args:
            snapshot: Rows keyed by remote table name.

        Returns:
            Dictionary with counts of updated records.
        """
        updated: dict[str, int] = {}

        for remote_table, (upsert_method, table_name) in ENTITY_MAPPING.items():
            items = snapshot.get(remote_table, [])
            if not items:
                continue
            method = getattr(self.db, upsert_method)
            count = method(items)
            if count > 0:
                updated[table_name] = count

            stamps = [item["updated_at"] for item in items if item.get("updated_at")]
            if stamps:
                self.db.set_sync_cursor(table_name, max(stamps))

        return {"updated": updated}

    def _remove_missing(self, remote_ids: dict[str, set[str]]) -> dict[str, int]:
        """Delete cached rows whose ids the backend no longer returns.

        Args:
            remote_ids: Every remote id keyed by local table name.

        Returns:
            Dictionary with counts of deleted records.
        """
        deleted: dict[str, int] = {}
        for table_name, ids in remote_ids.items():
            missing = sorted(self.db.get_ids(table_name) - ids)
            count = self.db.delete_by_ids(table_name, missing)
            if count > 0:
                deleted[table_name] = count
        return deleted

    def apply_snapshot_data(self, snapshot: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
        """Apply snapshot rows directly (for testing without HTTP).

        Args:
            snapshot: Rows keyed by remote table name.

        Returns:
            Dictionary with counts of updated records.
        """
        result = self._apply_snapshot(snapshot)
        result["status"] = "synced"
        return result
