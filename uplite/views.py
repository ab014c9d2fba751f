"""HTML pages rendered by the file routes."""
import html
from typing import List, Tuple
from urllib.parse import quote

from uplite.config import Settings
from uplite.models.stored_file import FileInfo, StoredFile


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{html.escape(title)}</title>
<link rel="stylesheet" href="/static/style.css">
</head>
<body>
<header><h1><a href="/">uplite</a></h1><a href="/files/">Browse</a></header>
<main>
{body}
</main>
</body>
</html>
"""


def render_index(files: List[StoredFile], settings: Settings) -> str:
    accept = ",".join(f".{ext}" for ext in settings.allowed_extensions)
    accept_attr = f' accept="{html.escape(accept)}"' if accept else ""
    allowed = ", ".join(settings.allowed_extensions) or "All"

    rows = []
    for stored in files:
        name = html.escape(stored.name)
        link = quote(stored.name)
        rows.append(
            f'<li><a href="/files/{link}">{name}</a>'
            f'<span class="actions"><a href="/info/{link}">Info</a>'
            f'<a href="/delete/{link}">Delete</a></span></li>'
        )
    listing = "\n".join(rows) if rows else '<li class="muted">No files uploaded yet.</li>'

    body = f"""<section class="uploader">
<form action="/upload" method="post" enctype="multipart/form-data">
<input type="file" name="file" multiple{accept_attr}>
<button type="submit" class="btn">Upload</button>
</form>
<p class="muted">Allowed extensions: {html.escape(allowed)} &middot;
up to {settings.max_files_per_request} files &middot;
max {settings.max_file_size_bytes / (1024 * 1024):.2f} MB each</p>
</section>
<ul class="files">
{listing}
</ul>"""
    return _page("uplite", body)


def render_info(info: FileInfo) -> str:
    rows = [
        ("Name", info.name),
        ("Size", info.size),
        ("Modified", info.modified),
        ("Path", info.absolute_path),
        ("OS", info.os),
        ("Architecture", info.arch),
        ("Host", info.host),
        ("Your IP", info.user_ip),
    ]
    table = "\n".join(
        f"<tr><th>{label}</th><td>{html.escape(value)}</td></tr>" for label, value in rows
    )
    link = quote(info.name)
    body = f"""<h2>File info</h2>
<table class="info">
{table}
</table>
<p><a class="btn" href="/files/{link}" download>Download</a>
<a class="btn" href="/delete/{link}">Delete</a>
<a class="btn" href="/">Back</a></p>"""
    return _page(f"Info - {info.name}", body)


def render_confirm_delete(filename: str) -> str:
    name = html.escape(filename)
    body = f"""<h2>Delete file</h2>
<p>Are you sure you want to delete <strong>{name}</strong>?</p>
<form action="/delete/{quote(filename)}" method="post">
<button type="submit" class="btn danger">Delete</button>
<a class="btn" href="/">Cancel</a>
</form>"""
    return _page(f"Delete - {filename}", body)


def render_directory_index(url_path: str, entries: List[Tuple[str, bool]], is_root: bool) -> str:
    rows = []
    if not is_root:
        rows.append('<li><a href="../">../</a></li>')
    for name, is_dir in entries:
        suffix = "/" if is_dir else ""
        rows.append(
            f'<li><a href="{quote(name)}{suffix}">{html.escape(name)}{suffix}</a></li>'
        )
    title = f"Index of {url_path}"
    body = f"""<h2>{html.escape(title)}</h2>
<ul class="tree">
{chr(10).join(rows)}
</ul>"""
    return _page(title, body)
