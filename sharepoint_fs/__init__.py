"""Filesystem-style client for SharePoint Online document libraries."""

from sharepoint_fs.core import (
    SharePointError,
    SharePointFileSystem,
    SharePointUploadError,
)
from sharepoint_fs.schemas import FolderEntry, UploadedFile, WebInfo

__version__ = "0.1.0"

__all__ = [
    "SharePointError",
    "SharePointFileSystem",
    "SharePointUploadError",
    "FolderEntry",
    "UploadedFile",
    "WebInfo",
]
