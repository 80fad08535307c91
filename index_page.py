"""HTML directory listings for directories without an index file."""

from __future__ import annotations

import html
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from utils import format_http_date


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    name: str
    is_dir: bool
    size: int
    mtime: float


def list_directory(path: Path) -> list[DirectoryEntry]:
    entries: list[DirectoryEntry] = []
    with os.scandir(path) as iterator:
        for item in iterator:
            try:
                item_stat = item.stat()
                is_dir = item.is_dir()
            except OSError:
                # Broken symlinks and entries removed mid-listing.
                continue
            entries.append(
                DirectoryEntry(
                    name=item.name,
                    is_dir=is_dir,
                    size=0 if is_dir else item_stat.st_size,
                    mtime=item_stat.st_mtime,
                )
            )
    return entries


def sort_entries(entries: list[DirectoryEntry]) -> list[DirectoryEntry]:
    return sorted(entries, key=lambda entry: (not entry.is_dir, entry.name))


def render_index_page(url_path: str, entries: list[DirectoryEntry]) -> str:
    """Render a deterministic listing, directories first then by name."""
    base = url_path if url_path.endswith("/") else url_path + "/"
    title = html.escape(base)

    rows: list[str] = []
    if base != "/":
        parent = base.rstrip("/").rsplit("/", 1)[0] + "/"
        rows.append(f'<li><a href="{quote(parent)}" class="dir">..</a></li>')

    for entry in sort_entries(entries):
        href = quote(base + entry.name) + ("/" if entry.is_dir else "")
        label = html.escape(entry.name) + ("/" if entry.is_dir else "")
        css_class = "dir" if entry.is_dir else "file"
        details = "" if entry.is_dir else f", {entry.size} bytes"
        rows.append(
            f'<li><a href="{href}" class="{css_class}">{label}</a>'
            f", {format_http_date(entry.mtime)}{details}</li>"
        )

    return (
        "<!DOCTYPE html>\n"
        "<html><head>"
        f"<title>{title}</title>"
        "</head><body>"
        f"<h1>{title}</h1>"
        "<ul>" + "".join(rows) + "</ul>"
        "</body></html>"
    )
