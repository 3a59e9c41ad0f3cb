"""API Endpoints for directories, directory index files and synchronisation with the blob store."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Query

from photoindex.api.auth import authenticated_user
from photoindex.connections import blobstore, db
from photoindex.index.tables import User
from photoindex.library.markdown import create_markdown, delete_markdown, get_markdown, update_markdown
from photoindex.library.photos import list_directory_paths
from photoindex.library.sync import reconcile
from photoindex.models import DeleteResult, DirectoryList, Markdown, MarkdownBody, SyncRequest, SyncResult

app_library = APIRouter(tags=["library"])

Prefix = Annotated[str, Path(description="Directory the index.md file belongs to, e.g. photos/2024")]


@app_library.get("/directories")
async def list_directories_endpoint(
    prefix: Annotated[str, Query(description="Only list directories starting with this prefix")] = "",
    recursive: Annotated[bool, Query(description="List all nested directories instead of the first level")] = False,
    user: User = Depends(authenticated_user),
) -> DirectoryList:
    return DirectoryList(prefixes=await list_directory_paths(db(), prefix, recursive))


@app_library.post("/sync")
async def sync_endpoint(
    body: Annotated[SyncRequest | None, Body()] = None,
    user: User = Depends(authenticated_user),
) -> SyncResult:
    """
    Bring the index in line with the object store: index photos that were added to the store
    directly and drop photos that are gone. With update_metadata, the metadata of every photo
    is extracted again from its bytes (slow).
    """
    update_metadata = body.update_metadata if body is not None else False
    return await reconcile(db(), blobstore(), user.id, refresh_metadata=update_metadata)


@app_library.get("/markdown/{prefix:path}")
async def get_markdown_endpoint(prefix: Prefix, user: User = Depends(authenticated_user)) -> Markdown:
    return await get_markdown(db(), blobstore(), user.id, prefix)


@app_library.post("/markdown/{prefix:path}", status_code=201)
async def create_markdown_endpoint(
    prefix: Prefix, body: Annotated[MarkdownBody, Body(...)], user: User = Depends(authenticated_user)
) -> Markdown:
    """
    Create the index.md of a directory. The markdown must start with YAML front matter, e.g.

        ---
        sort_photos_in_chronological_order: true
        ---
        # Summer holiday
    """
    return await create_markdown(db(), blobstore(), user.id, prefix, body.markdown)


@app_library.put("/markdown/{prefix:path}")
async def update_markdown_endpoint(
    prefix: Prefix, body: Annotated[MarkdownBody, Body(...)], user: User = Depends(authenticated_user)
) -> Markdown:
    return await update_markdown(db(), blobstore(), user.id, prefix, body.markdown)


@app_library.delete("/markdown/{prefix:path}")
async def delete_markdown_endpoint(prefix: Prefix, user: User = Depends(authenticated_user)) -> DeleteResult:
    return DeleteResult(success=await delete_markdown(db(), blobstore(), user.id, prefix))
