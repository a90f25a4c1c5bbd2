"""WebDAV client for Nextcloud file storage."""

import asyncio
import xml.etree.ElementTree as ET
from collections import deque
from typing import List, Optional, Tuple
from urllib.parse import quote, unquote, urlparse

import aiohttp

from .base import (
    RemoteStorage,
    RemoteEntry,
    RemoteStorageError,
    RemoteNotFoundError,
    RemoteAlreadyExistsError,
    AuthenticationError,
    APIConnectionError,
)


DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:">'
    '<d:prop>'
    '<d:getlastmodified/><d:getcontentlength/><d:getetag/><d:resourcetype/>'
    '</d:prop>'
    '</d:propfind>'
)


class WebDAVClient(RemoteStorage):
    """Remote storage over WebDAV, e.g. ``https://host/remote.php/dav/files/<user>``."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs
    ):
        """Initialize WebDAV client.

        Args:
            base_url: DAV root URL that remote paths are relative to
            username: Login name
            password: Password, app password or token
            timeout: Total timeout per request in seconds
            verify_ssl: Verify TLS certificates
            session: Optional pre-built session (the client will not close it)
        """
        super().__init__(**kwargs)

        self.base_url = base_url.rstrip('/')
        self.username = username
        self._auth = aiohttp.BasicAuth(username, password)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._verify_ssl = verify_ssl
        self._session = session
        self._owns_session = session is None
        self._base_path = unquote(urlparse(self.base_url).path).rstrip('/')

        self.logger.debug("WebDAV client initialized", base_url=self.base_url, username=username)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=self._verify_ssl)
            self._session = aiohttp.ClientSession(connector=connector, timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        if not path.startswith('/'):
            path = '/' + path
        return self.base_url + quote(path)

    async def _request(
        self,
        method: str,
        path: str,
        ok_statuses: Tuple[int, ...],
        **kwargs
    ) -> Tuple[int, bytes]:
        """Send a request and map failure statuses onto the error taxonomy."""
        session = self._get_session()
        url = self._url(path)

        try:
            async with session.request(method, url, auth=self._auth, **kwargs) as response:
                body = await response.read()
                status = response.status
        except asyncio.TimeoutError as e:
            raise APIConnectionError(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise APIConnectionError(f"{method} {path} failed: {e}") from e

        if status in ok_statuses:
            return status, body

        message = f"{method} {path} returned HTTP {status}"
        if status in (401, 403):
            raise AuthenticationError(message)
        if status == 404:
            raise RemoteNotFoundError(message, path=path, status=status)
        if status == 412:
            raise RemoteAlreadyExistsError(message, path=path, status=status)
        raise RemoteStorageError(message, path=path, status=status)

    async def _propfind(self, path: str, depth: str) -> List[RemoteEntry]:
        _, body = await self._request(
            "PROPFIND",
            path,
            ok_statuses=(207,),
            data=PROPFIND_BODY.encode('utf-8'),
            headers={"Depth": depth, "Content-Type": "application/xml; charset=utf-8"},
        )
        return self._parse_multistatus(body)

    def _parse_multistatus(self, body: bytes) -> List[RemoteEntry]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise RemoteStorageError(f"Malformed PROPFIND response: {e}") from e

        entries = []
        for response in root.findall(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href")
            if href is None:
                continue

            prop = None
            for propstat in response.findall(f"{DAV_NS}propstat"):
                status = propstat.findtext(f"{DAV_NS}status") or ""
                if " 200 " in status:
                    prop = propstat.find(f"{DAV_NS}prop")
                    break
            if prop is None:
                continue

            entries.append(self._entry_from_prop(href, prop))

        return entries

    def _entry_from_prop(self, href: str, prop: ET.Element) -> RemoteEntry:
        href_path = unquote(urlparse(href).path)
        if href_path.startswith(self._base_path):
            href_path = href_path[len(self._base_path):]
        filename = '/' + href_path.strip('/')

        resourcetype = prop.find(f"{DAV_NS}resourcetype")
        is_collection = resourcetype is not None and resourcetype.find(f"{DAV_NS}collection") is not None

        size_text = prop.findtext(f"{DAV_NS}getcontentlength")
        etag = prop.findtext(f"{DAV_NS}getetag")

        return RemoteEntry(
            filename=filename,
            basename=filename.rsplit('/', 1)[-1],
            type="directory" if is_collection else "file",
            lastmod=prop.findtext(f"{DAV_NS}getlastmodified"),
            size=int(size_text) if size_text and size_text.isdigit() else 0,
            etag=etag.strip('"') if etag else None,
        )

    async def stat(self, path: str) -> RemoteEntry:
        entries = await self._propfind(path, depth="0")
        if not entries:
            raise RemoteNotFoundError(f"No PROPFIND entry for {path}", path=path)
        return entries[0]

    async def create_directory(self, path: str) -> None:
        try:
            await self._request("MKCOL", path, ok_statuses=(201,))
        except RemoteStorageError as e:
            # 405: collection exists, 409: an ancestor is missing
            if e.status == 405:
                raise RemoteAlreadyExistsError(f"Directory already exists: {path}", path=path, status=405) from e
            if e.status == 409:
                raise RemoteNotFoundError(f"Parent directory missing for {path}", path=path, status=409) from e
            raise

        self.logger.debug("Created remote directory", path=path)

    async def list_directory_recursive(self, path: str) -> List[RemoteEntry]:
        """Walk the tree with Depth: 1 requests, breadth first.

        Nextcloud rejects ``Depth: infinity`` by default.
        """
        root = '/' + path.strip('/')
        results: List[RemoteEntry] = []
        pending = deque([root])
        seen = {root}

        while pending:
            directory = pending.popleft()
            for entry in await self._propfind(directory, depth="1"):
                if entry.filename == directory:
                    continue
                results.append(entry)
                if entry.is_directory and entry.filename not in seen:
                    seen.add(entry.filename)
                    pending.append(entry.filename)

        return results

    async def get_file_contents(self, path: str) -> str:
        _, body = await self._request("GET", path, ok_statuses=(200,))
        try:
            return body.decode('utf-8')
        except UnicodeDecodeError as e:
            raise RemoteStorageError(f"{path} is not valid UTF-8 text", path=path) from e

    async def put_file_contents(self, path: str, content: str, overwrite: bool = True) -> None:
        headers = {"Content-Type": "text/markdown; charset=utf-8"}
        if not overwrite:
            headers["If-None-Match"] = "*"

        try:
            await self._request(
                "PUT",
                path,
                ok_statuses=(200, 201, 204),
                data=content.encode('utf-8'),
                headers=headers,
            )
        except RemoteStorageError as e:
            if e.status == 409:
                raise RemoteNotFoundError(f"Parent directory missing for {path}", path=path, status=409) from e
            raise
