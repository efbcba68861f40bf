"""Thin async client for the Dropbox v2 HTTP API, authorised through TokenCache."""
import json
import logging
from typing import Optional
import httpx
from prionstudy.exceptions import RemoteAPIError
from prionstudy.services.token_cache import TokenCache, token_cache

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"


class DropboxClient:
    def __init__(self, tokens: TokenCache, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.tokens = tokens
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.tokens.configured

    async def _headers(self) -> dict:
        token = await self.tokens.get_valid_token()
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _raise_for_status(response: httpx.Response, endpoint: str) -> None:
        if response.status_code < 400:
            return
        try:
            body = response.json()
        except ValueError:
            body = None
        summary = body.get("error_summary", "") if isinstance(body, dict) else ""
        raise RemoteAPIError(
            f"Dropbox {endpoint} failed ({response.status_code}): {summary or response.text[:200]}",
            status=response.status_code,
            summary=summary,
        )

    @staticmethod
    def _json(response: httpx.Response, endpoint: str) -> dict:
        try:
            return response.json()
        except ValueError:
            raise RemoteAPIError(
                f"Dropbox {endpoint} returned a non-JSON body ({response.status_code})",
                status=response.status_code,
            )

    async def _post(self, url: str, endpoint: str, timeout: float, headers: Optional[dict] = None, **kwargs) -> httpx.Response:
        """POST with the cached bearer token; a 401 drops the token and retries once with a fresh one."""
        for attempt in range(2):
            request_headers = {**(headers or {}), **await self._headers()}
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.post(url, headers=request_headers, **kwargs)
            except httpx.HTTPError as e:
                raise RemoteAPIError(f"Dropbox {endpoint} request failed: {e}") from e
            if response.status_code != 401 or attempt == 1:
                break
            logger.warning("Dropbox rejected the access token on %s, refreshing", endpoint)
            self.tokens.invalidate()
        self._raise_for_status(response, endpoint)
        return response

    async def rpc(self, endpoint: str, payload: Optional[dict] = None) -> dict:
        kwargs = {} if payload is None else {"json": payload}
        response = await self._post(f"{API_URL}/{endpoint}", endpoint, 30.0, **kwargs)
        return self._json(response, endpoint)

    async def upload(self, path: str, content: bytes, mode: str = "overwrite", autorename: bool = False) -> dict:
        headers = {
            "Content-Type": "application/octet-stream",
            "Dropbox-API-Arg": json.dumps({"path": path, "mode": mode, "autorename": autorename, "mute": True}),
        }
        response = await self._post(f"{CONTENT_URL}/files/upload", "files/upload", 120.0, headers=headers, content=content)
        return self._json(response, "files/upload")

    async def download(self, path: str) -> bytes:
        headers = {"Dropbox-API-Arg": json.dumps({"path": path})}
        response = await self._post(f"{CONTENT_URL}/files/download", "files/download", 120.0, headers=headers)
        return response.content

    async def list_folder(self, path: str) -> list[dict]:
        result = await self.rpc("files/list_folder", {"path": path})
        entries = list(result.get("entries", []))
        while result.get("has_more"):
            result = await self.rpc("files/list_folder/continue", {"cursor": result["cursor"]})
            entries.extend(result.get("entries", []))
        return entries

    async def delete(self, path: str) -> dict:
        result = await self.rpc("files/delete_v2", {"path": path})
        return result.get("metadata", {})

    async def get_metadata(self, path: str) -> dict:
        return await self.rpc("files/get_metadata", {"path": path})

    async def create_folder(self, path: str) -> dict:
        return await self.rpc("files/create_folder_v2", {"path": path})

    async def current_account(self) -> dict:
        return await self.rpc("users/get_current_account")

    async def share_url(self, path: str) -> str:
        """Best available link for a file: temporary, then shared, then a preview URL."""
        try:
            result = await self.rpc("files/get_temporary_link", {"path": path})
            return result["link"]
        except RemoteAPIError as e:
            logger.warning("Could not get temporary link for %s, trying shared link: %s", path, e.message)

        try:
            links = await self.rpc("sharing/list_shared_links", {"path": path, "direct_only": True})
            if links.get("links"):
                url = links["links"][0]["url"]
            else:
                created = await self.rpc(
                    "sharing/create_shared_link_with_settings",
                    {
                        "path": path,
                        "settings": {"requested_visibility": "public", "audience": "public", "access": "viewer"},
                    },
                )
                url = created["url"]
            return url.replace("?dl=0", "?dl=1")
        except RemoteAPIError as e:
            logger.error("Could not get any link for %s: %s", path, e.message)
            return f"https://www.dropbox.com/preview{path}"


dropbox_client = DropboxClient(token_cache)
