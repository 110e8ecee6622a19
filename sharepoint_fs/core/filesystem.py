"""Filesystem-style operations on a SharePoint site.

Paths passed to SharePointFileSystem are folder paths relative to the
site, e.g. ``Shared Documents/Reports``. They are joined to the site's
server-relative URL (``/sites/Site``) which is looked up once from
``/_api/web``.
"""

import re
from typing import Any
from urllib.parse import quote, urlsplit

from sharepoint_fs.config import Settings, get_settings
from sharepoint_fs.core.auth import SharePointAuthService, get_sharepoint_auth
from sharepoint_fs.core.client import (
    ODATA_VERBOSE,
    SharePointRestClient,
    odata_literal,
)
from sharepoint_fs.core.exceptions import SharePointValidationError
from sharepoint_fs.core.logging import get_logger
from sharepoint_fs.core.upload import (
    RestUploadTransport,
    UploadDriver,
    UploadSession,
    UploadStateMachine,
    generate_upload_id,
    is_supported_stream,
)
from sharepoint_fs.schemas import (
    SP_FOLDER_TYPE,
    FolderEntry,
    UploadedFile,
    WebInfo,
)

logger = get_logger(__name__)

# Body of the file created before a chunked upload starts writing to it
PLACEHOLDER_CONTENT = b" "

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(name: str) -> tuple[tuple[int, Any], ...]:
    """Sort key ordering names case-insensitively with numeric runs as numbers.

    ``file2`` sorts before ``file10``.
    """
    return tuple(
        (0, int(part)) if part.isdigit() else (1, part.casefold())
        for part in _DIGITS.split(name)
        if part
    )


def join_path(*parts: str) -> str:
    """Join path segments with single slashes, dropping empty segments."""
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


def require_path(path: str | None) -> None:
    """Reject a missing path, or one that names the site root.

    Raises:
        SharePointValidationError: If path is empty once slashes are stripped
    """
    if not path or not path.strip("/"):
        raise SharePointValidationError("You must provide a path.")


class SharePointFileSystem:
    """File and folder operations on one SharePoint site.

    Call authenticate() before anything else. The site's server-relative
    URL is fetched on first use, or explicitly with get_web_endpoint().

    Attributes:
        base_url: Server-relative URL of the site (e.g. /sites/Site)
        encoded_base_url: base_url percent-encoded for use in URLs
    """

    def __init__(
        self,
        site_url: str,
        settings: Settings | None = None,
        auth_service: SharePointAuthService | None = None,
        client: SharePointRestClient | None = None,
    ) -> None:
        """Initialize the filesystem for a site.

        Args:
            site_url: Tenant site URL, e.g. https://example.sharepoint.com/sites/Site
            settings: Settings to use (default: the cached environment settings)
            auth_service: Token provider (default: built from settings)
            client: REST client (default: one bound to site_url)

        Raises:
            SharePointValidationError: If site_url is empty
        """
        if not site_url:
            raise SharePointValidationError("site_url has not been specified")

        self._default_settings = settings is None
        self._settings = settings or get_settings()
        self._auth = auth_service
        self._client = client or SharePointRestClient(
            site_url,
            timeout=self._settings.sharepoint_request_timeout,
            debug=self._settings.sharepoint_debug,
        )
        self.base_url: str | None = None
        self.encoded_base_url: str | None = None

        logger.info("sharepoint_filesystem_init", site_url=self.site_url)

    @property
    def site_url(self) -> str:
        return self._client.site_url

    @property
    def access_token(self) -> str | None:
        return self._client.access_token

    async def __aenter__(self) -> "SharePointFileSystem":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the REST client and release resources."""
        await self._client.close()

    def _get_auth(self) -> SharePointAuthService:
        if self._auth is None:
            if self._default_settings:
                self._auth = get_sharepoint_auth()
            else:
                self._auth = SharePointAuthService(self._settings)
        return self._auth

    async def authenticate(self) -> None:
        """Acquire an app-only access token and keep it for later calls.

        Raises:
            SharePointAuthenticationError: If token acquisition fails
        """
        self._client.access_token = await self._get_auth().get_app_token()
        logger.info("sharepoint_authenticated", site_url=self.site_url)

    async def get_web_endpoint(self) -> WebInfo:
        """Look up the site's server-relative URL.

        For a site url of https://example.sharepoint.com/sites/TestSite the
        base url is /sites/TestSite.

        Returns:
            Site details
        """
        web = await self._client.get_web()
        info = WebInfo.model_validate(web)
        self.base_url = info.server_relative_url
        self.encoded_base_url = quote(info.server_relative_url, safe="")
        logger.debug("sharepoint_web_endpoint", base_url=self.base_url)
        return info

    async def get_form_digest_value(self) -> str:
        """Fetch a request digest for state-changing calls."""
        return await self._client.get_form_digest_value()

    async def _server_relative(self, *parts: str) -> str:
        self._client.check_token()
        if self.base_url is None:
            await self.get_web_endpoint()
        return "/" + join_path(self.base_url or "", *parts)

    def _absolute_url(self, server_relative: str) -> str:
        site = urlsplit(self.site_url)
        return f"{site.scheme}://{site.netloc}{quote(server_relative)}"

    async def get_contents(self, path: str) -> list[FolderEntry]:
        """List a folder.

        Folders come first, then files; each group is naturally sorted by
        name.

        Args:
            path: Folder path relative to the site

        Returns:
            Entries describing each file or folder
        """
        folder = await self._server_relative(path)
        entries: list[FolderEntry] = []

        for kind in ("Folders", "Files"):
            response = await self._client.request(
                "GET",
                f"/_api/web/GetFolderByServerRelativeUrl('{odata_literal(folder)}')"
                f"/{kind}",
                f"Failed to get folder contents (type: {kind})",
                headers={"Accept": ODATA_VERBOSE},
            )
            results = response.json()["d"]["results"]
            results.sort(key=lambda item: natural_sort_key(item["Name"]))
            entries.extend(FolderEntry.from_item(item) for item in results)

        logger.debug("sharepoint_folder_listed", path=folder, count=len(entries))
        return entries

    async def create_folder(self, path: str) -> None:
        """Create a folder.

        Args:
            path: Folder path relative to the site
        """
        require_path(path)

        folder = await self._server_relative(path)
        digest = await self.get_form_digest_value()
        await self._client.request(
            "POST",
            "/_api/web/folders",
            "Failed to create specified folder",
            headers={
                "Accept": ODATA_VERBOSE,
                "Content-Type": ODATA_VERBOSE,
                "X-RequestDigest": digest,
            },
            json={
                "__metadata": {"type": SP_FOLDER_TYPE},
                "ServerRelativeUrl": folder,
            },
        )
        logger.info("sharepoint_folder_created", path=folder)

    async def delete_folder(self, path: str) -> None:
        """Delete a folder and everything in it.

        Args:
            path: Folder path relative to the site
        """
        require_path(path)

        folder = await self._server_relative(path)
        digest = await self.get_form_digest_value()
        await self._client.request(
            "POST",
            f"/_api/web/GetFolderByServerRelativeUrl('{odata_literal(folder)}')",
            "Unable to delete folder",
            headers={"X-RequestDigest": digest, "X-HTTP-Method": "DELETE"},
        )
        logger.info("sharepoint_folder_deleted", path=folder)

    async def create_file(self, path: str, file_name: str, data: bytes | str) -> None:
        """Create a file with the given content, overwriting any existing one.

        Args:
            path: Folder path relative to the site
            file_name: Name of the file
            data: File content
        """
        require_path(path)
        if not file_name:
            raise SharePointValidationError("You must provide a file name.")
        if not data:
            raise SharePointValidationError("You must provide data.")

        folder = await self._server_relative(path)
        digest = await self.get_form_digest_value()
        await self._add_file(folder, file_name, data, digest)

    async def _add_file(
        self,
        folder: str,
        file_name: str,
        data: bytes | str,
        digest: str,
    ) -> None:
        await self._client.request(
            "POST",
            f"/_api/web/GetFolderByServerRelativeUrl('{odata_literal(folder)}')"
            f"/Files/add(url='{odata_literal(file_name)}',overwrite=true)",
            "Unable to create file",
            headers={"Accept": ODATA_VERBOSE, "X-RequestDigest": digest},
            content=data.encode("utf-8") if isinstance(data, str) else data,
        )
        logger.info(
            "sharepoint_file_created",
            path=folder,
            file_name=file_name,
            size=len(data),
        )

    async def create_file_chunked(
        self,
        path: str,
        file_name: str,
        stream: Any,
        file_size: int,
        chunk_size: int | None = None,
    ) -> UploadedFile:
        """Create a file and upload its content in chunks.

        The file is first created with placeholder content, then written
        through a start/continue/finish upload session. On any failure the
        session is cancelled (best-effort) and the original error raised.

        Args:
            path: Folder path relative to the site
            file_name: Name of the file
            stream: Byte source (bytes, binary file object, or a sync or
                async iterable of bytes)
            file_size: Size of the content in bytes
            chunk_size: Chunk size in bytes (default: SHAREPOINT_CHUNK_SIZE)

        Returns:
            Descriptor of the uploaded file
        """
        require_path(path)
        if not file_name:
            raise SharePointValidationError("You must provide a file name.")
        if stream is None:
            raise SharePointValidationError("You must provide a stream.")
        if not is_supported_stream(stream):
            raise SharePointValidationError(
                f"Unsupported stream type: {type(stream).__name__}"
            )
        if not file_size or file_size < 0:
            raise SharePointValidationError("You must provide a file size.")
        if chunk_size is None:
            chunk_size = self._settings.sharepoint_chunk_size
        if chunk_size <= 0:
            raise SharePointValidationError("Chunk size must be greater than zero.")

        folder = await self._server_relative(path)
        target_path = f"{folder}/{file_name}"
        digest = await self.get_form_digest_value()
        await self._add_file(folder, file_name, PLACEHOLDER_CONTENT, digest)

        session = UploadSession(
            upload_id=generate_upload_id(),
            target_path=target_path,
            total_size=file_size,
            chunk_size=chunk_size,
        )
        machine = UploadStateMachine(session, RestUploadTransport(self._client, digest))
        await UploadDriver(machine, filename=file_name).run(stream)

        return UploadedFile(
            name=file_name,
            path=join_path(path, file_name),
            url=self._absolute_url(target_path),
        )

    async def delete_file(self, path: str, file_name: str) -> None:
        """Delete a file.

        Args:
            path: Folder path relative to the site
            file_name: Name of the file
        """
        if not file_name:
            raise SharePointValidationError("You must provide a file name.")

        file_path = await self._server_relative(path, file_name)
        digest = await self.get_form_digest_value()
        await self._client.request(
            "POST",
            f"/_api/web/GetFileByServerRelativeUrl('{odata_literal(file_path)}')",
            "Unable to delete file",
            headers={"X-RequestDigest": digest, "X-HTTP-Method": "DELETE"},
        )
        logger.info("sharepoint_file_deleted", path=file_path)

    async def move_file(
        self, source_path: str, target_path: str, file_name: str
    ) -> None:
        """Move a file to another folder, overwriting a file of the same name.

        Args:
            source_path: Folder the file is in, relative to the site
            target_path: Folder to move it to, relative to the site
            file_name: Name of the file
        """
        if not file_name:
            raise SharePointValidationError("You must provide a file name.")

        source = await self._server_relative(source_path, file_name)
        target = await self._server_relative(target_path, file_name)
        digest = await self.get_form_digest_value()
        await self._client.request(
            "POST",
            f"/_api/web/GetFileByServerRelativeUrl('{odata_literal(source)}')"
            f"/moveto(newurl='{odata_literal(target)}',flags=1)",
            "Unable to move file",
            headers={"X-RequestDigest": digest},
        )
        logger.info("sharepoint_file_moved", source=source, target=target)

    async def move_folder(self, source_path: str, target_path: str) -> None:
        """Move a folder tree, then delete the source folder.

        The folder at source_path ends up at target_path: every folder
        below it is recreated under target_path and every file is moved
        across.

        Args:
            source_path: Folder to move, relative to the site
            target_path: New path of the folder, relative to the site
        """
        require_path(source_path)
        require_path(target_path)

        folders: list[str] = []
        files_to_move: list[tuple[str, str, str]] = []

        async def collect(source: str, target: str) -> None:
            folders.append(target)
            for entry in await self.get_contents(source):
                if entry.kind == "folder":
                    await collect(f"{source}/{entry.name}", f"{target}/{entry.name}")
                else:
                    files_to_move.append((source, target, entry.name))

        await collect(source_path.strip("/"), target_path.strip("/"))

        for folder in folders:
            await self.create_folder(folder)
        for source, target, file_name in files_to_move:
            await self.move_file(source, target, file_name)

        await self.delete_folder(source_path)
        logger.info(
            "sharepoint_folder_moved",
            source=source_path,
            target=target_path,
            files=len(files_to_move),
        )

