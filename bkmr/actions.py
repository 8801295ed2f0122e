"""Actions on selected bookmarks: open, edit, tag, delete, copy."""
import logging
import os
import subprocess
import sys
import tempfile
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from bkmr.models import Bookmark, normalize_tags
from bkmr.store import TagsArg

logger = logging.getLogger(__name__)

SHELL_PREFIX = "shell::"

EDIT_TEMPLATE = """\
# Lines beginning with "#" will be stripped.
# Add URL in next line (single line).
{url}
# Add TITLE in next line (single line).
{title}
# Add comma-separated TAGS in next line (single line).
{tags}
# Add DESCRIPTION in next line(s).
{description}
"""


@dataclass(frozen=True)
class EditedFields:
    url: str
    title: str
    tags: frozenset
    description: str


# ============================================================================
# Open
# ============================================================================

def launch(url: str) -> None:
    """Launch a bookmark URL.

    ``shell::<command>`` runs the command through the shell; local paths are
    opened as files; anything else goes to the web browser.
    """
    if url.startswith(SHELL_PREFIX):
        command = url[len(SHELL_PREFIX):]
        logger.debug(f"Running shell command {command!r}")
        result = subprocess.run(command, shell=True)
        if result.returncode != 0:
            logger.warning(f"Command {command!r} exited with status {result.returncode}")
        return

    path = Path(url).expanduser()
    if path.exists():
        url = path.resolve().as_uri()

    logger.debug(f"Opening {url}")
    webbrowser.open(url)


async def open_bookmarks(store, ids: Iterable[int]) -> List[Bookmark]:
    """Launch bookmarks and count the access.

    Raises:
        BookmarkNotFound: If an id is unknown
    """
    opened = []
    for bookmark_id in ids:
        bookmark = await store.get(bookmark_id)
        launch(bookmark.url)
        opened.append(await store.record_access(bookmark_id))
    return opened


# ============================================================================
# Edit
# ============================================================================

def edit_template(bookmark: Bookmark) -> str:
    """Render a bookmark into the editable template."""
    return EDIT_TEMPLATE.format(
        url=bookmark.url,
        title=bookmark.title,
        tags=",".join(bookmark.sorted_tags),
        description=bookmark.description,
    )


def parse_edit_template(text: str) -> EditedFields:
    """Read the fields back from an edited template.

    Raises:
        ValueError: If the URL line is missing or empty
    """
    lines = [line for line in text.splitlines() if not line.startswith("#")]
    if not lines or not lines[0].strip():
        raise ValueError("Edited bookmark has no URL")

    lines += [""] * (3 - len(lines))
    return EditedFields(
        url=lines[0].strip(),
        title=lines[1].strip(),
        tags=normalize_tags(lines[2]),
        description="\n".join(lines[3:]).strip(),
    )


def run_editor(text: str) -> str:
    """Let the user edit ``text`` in $EDITOR and return the result."""
    editor = os.environ.get("EDITOR", "vim")
    with tempfile.NamedTemporaryFile("w", suffix=".txt", delete=False, encoding="utf-8") as f:
        f.write(text)
        path = Path(f.name)
    try:
        subprocess.run([editor, str(path)], check=True)
        return path.read_text(encoding="utf-8")
    finally:
        path.unlink(missing_ok=True)


async def edit_bookmarks(store, ids: Iterable[int], editor=run_editor) -> List[Bookmark]:
    """Edit bookmarks one after another in the editor.

    Raises:
        BookmarkNotFound: If an id is unknown
        DuplicateURL: If an edited URL belongs to another bookmark
    """
    edited = []
    for bookmark_id in ids:
        bookmark = await store.get(bookmark_id)
        fields = parse_edit_template(editor(edit_template(bookmark)))
        edited.append(await store.update(
            bookmark_id,
            url=fields.url,
            title=fields.title,
            tags=fields.tags,
            description=fields.description,
        ))
    return edited


# ============================================================================
# Tags
# ============================================================================

async def update_tags(
    store,
    ids: Iterable[int],
    add: TagsArg = None,
    remove: TagsArg = None,
    force: bool = False,
) -> List[Bookmark]:
    """Add and remove tags on several bookmarks at once.

    With ``force`` the tag list is replaced by ``add``.

    Raises:
        ValueError: If ``force`` is given without tags to add, or with tags to remove
        BookmarkNotFound: If an id is unknown
    """
    add_tags = normalize_tags(add)
    remove_tags = normalize_tags(remove)
    if force and (not add_tags or remove_tags):
        raise ValueError("Force update requires tags but no ntags")

    updated = []
    for bookmark_id in ids:
        bookmark = await store.get(bookmark_id)
        tags = add_tags if force else (bookmark.tags | add_tags) - remove_tags
        updated.append(await store.update(bookmark_id, tags=tags))
    return updated


# ============================================================================
# Delete / copy
# ============================================================================

async def delete_bookmarks(store, ids: Iterable[int]) -> List[int]:
    """Delete bookmarks.

    Raises:
        BookmarkNotFound: If an id is unknown
    """
    deleted = []
    for bookmark_id in ids:
        await store.delete(bookmark_id)
        deleted.append(bookmark_id)
    return deleted


async def copy_urls(store, ids: Iterable[int], out=None) -> List[str]:
    """Write the URLs of the bookmarks to stdout, one per line."""
    out = out or sys.stdout
    urls = [(await store.get(bookmark_id)).url for bookmark_id in ids]
    for url in urls:
        print(url, file=out)
    return urls
