"""
Backend Client for Guest Check-in API
=====================================
Client module for front ends and scripts talking to the check-in backend.
"""

import aiohttp
import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8000")

JsonResult = Union[Dict[str, Any], List[Any]]


class CheckinClient:
    """
    Async client for communicating with the Guest Check-in Backend.

    Failed requests return {"success": False, "message": ..., "error": ...}
    instead of raising.
    """

    def __init__(self, backend_url: str = DEFAULT_BACKEND_URL, db_path: Optional[str] = None):
        self.backend_url = backend_url.rstrip('/')
        self.db_path = db_path
        self.session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=30)
            )
        return self.session

    async def close(self):
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self) -> "CheckinClient":
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _with_db(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.db_path:
            data = {**data, "db_path": self.db_path}
        return data

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Any = None
    ) -> JsonResult:
        try:
            session = await self._get_session()
            async with session.request(
                method,
                f"{self.backend_url}{path}",
                params=params,
                json=json,
                data=data
            ) as response:
                if response.status == 200:
                    return await response.json()
                error_text = await response.text()
                logger.error(f"{method} {path} failed: {response.status} - {error_text}")
                return {
                    "success": False,
                    "message": f"Backend error: {response.status}",
                    "error": error_text
                }
        except asyncio.TimeoutError:
            logger.error(f"{method} {path} timed out")
            return {"success": False, "message": "Request timed out", "error": "Timeout"}
        except aiohttp.ClientError as e:
            logger.error(f"Connection error: {e}")
            return {"success": False, "message": "Connection failed", "error": str(e)}

    async def health_check(self) -> Dict[str, Any]:
        """Check backend health status."""
        result = await self._request("GET", "/")
        if isinstance(result, dict) and result.get("success") is False:
            return {"status": "offline", "error": result.get("error")}
        return result

    async def init_db(self) -> JsonResult:
        return await self._request("POST", "/init", json=self._with_db({}))

    async def import_rows(self, rows: List[Dict[str, Any]], mode: str = "append") -> JsonResult:
        """
        Import already-parsed spreadsheet rows.

        Args:
            rows: Dicts with memberName/guestNames/checkIn/... keys (or snake_case)
            mode: "replace" or "append"
        """
        return await self._request("POST", "/import", json=self._with_db({"rows": rows, "mode": mode}))

    async def import_csv(self, csv_bytes: bytes, filename: str = "guests.csv", mode: str = "append") -> JsonResult:
        data = aiohttp.FormData()
        data.add_field('file', csv_bytes, filename=filename, content_type='text/csv')
        return await self._request("POST", "/import/csv", params=self._with_db({"mode": mode}), data=data)

    async def search_guests(self, query: str = "", limit: Optional[int] = None) -> JsonResult:
        params = {"q": query}
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", "/guests/search", params=self._with_db(params))

    async def search_members(self, query: str = "", limit: Optional[int] = None) -> JsonResult:
        params = {"q": query}
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", "/members/search", params=self._with_db(params))

    async def guests_for_member(self, member_host: str) -> JsonResult:
        return await self._request("GET", "/members/guests", params=self._with_db({"member_host": member_host}))

    async def toggle(
        self,
        guest_id: int,
        action: str,
        operator: Optional[str] = None,
        force: bool = False
    ) -> JsonResult:
        """
        Check a guest in ("in") or out ("out").

        Returns:
            {"status": ..., "guest_id": ...} from the backend
        """
        payload = {"guest_id": guest_id, "action": action, "operator": operator, "force": force}
        async with self._lock:  # Keep toggles and undos in submission order
            result = await self._request("POST", "/toggle", json=self._with_db(payload))
        if isinstance(result, dict) and "status" in result:
            logger.info(f"Toggle {action} guest {guest_id}: {result['status']}")
        return result

    async def undo(self) -> JsonResult:
        async with self._lock:
            return await self._request("POST", "/undo", json=self._with_db({}))

    async def export(self, out_dir: Optional[str] = None) -> JsonResult:
        return await self._request("POST", "/export", json=self._with_db({"out_dir": out_dir}))

    async def stats(self) -> JsonResult:
        params = self._with_db({})
        return await self._request("GET", "/stats", params=params or None)


# Global client instance
_client: Optional[CheckinClient] = None


def get_client(backend_url: str = DEFAULT_BACKEND_URL) -> CheckinClient:
    """Get or create global client instance."""
    global _client
    if _client is None:
        _client = CheckinClient(backend_url)
    return _client


async def close_client():
    """Close global client instance."""
    global _client
    if _client:
        await _client.close()
        _client = None
