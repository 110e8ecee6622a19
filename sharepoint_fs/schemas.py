"""Pydantic schemas for SharePoint REST responses and operation results."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SP_FOLDER_TYPE = "SP.Folder"


class WebInfo(BaseModel):
    """Site details from ``/_api/web``."""

    id: str = Field(alias="Id")
    title: str = Field(alias="Title")
    description: str = Field(default="", alias="Description")
    created: datetime | None = Field(default=None, alias="Created")
    modified: datetime | None = Field(default=None, alias="LastItemUserModifiedDate")
    server_relative_url: str = Field(alias="ServerRelativeUrl")

    model_config = {"populate_by_name": True}


class FolderEntry(BaseModel):
    """A file or folder inside a SharePoint folder."""

    name: str
    kind: Literal["file", "folder"]
    server_relative_url: str
    size: int | None = None
    time_last_modified: datetime | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "FolderEntry":
        """Build an entry from one verbose OData result item."""
        item_type = item.get("__metadata", {}).get("type")
        return cls(
            name=item["Name"],
            kind="folder" if item_type == SP_FOLDER_TYPE else "file",
            server_relative_url=item.get("ServerRelativeUrl", ""),
            size=item.get("Length"),
            time_last_modified=item.get("TimeLastModified"),
        )


class UploadedFile(BaseModel):
    """Descriptor of a file written by a chunked upload."""

    name: str
    path: str
    url: str
