"""Map stored file URLs back to repository paths.

Uploads are recorded with their raw-content URL, e.g.

    https://raw.githubusercontent.com/<user>/<repo>/<branch>/curriculos/joao.pdf

The repository path is whatever follows the ``/<branch>/`` segment. The
``github.com/<user>/<repo>/blob/<branch>/...`` form is accepted too. URLs for
another repository or branch, or that point outside the upload directory,
are rejected instead of guessed at.
"""
from __future__ import annotations

from urllib.parse import unquote, urlsplit

from curriculo_cleanup.config import Settings
from curriculo_cleanup.errors import InvalidFileUrlError


def file_path_from_url(url: str, settings: Settings) -> str:
    if not url:
        raise InvalidFileUrlError("empty file URL")

    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidFileUrlError(f"not an absolute URL: {url}")

    prefix = f"/{settings.github_user}/{settings.repo_name}/".lower()
    url_path = unquote(parts.path)
    if not url_path.lower().startswith(prefix):
        raise InvalidFileUrlError(f"URL is not in {settings.repo_slug}: {url}")

    rest = url_path[len(prefix):]
    for view in ("blob/", "raw/"):
        if rest.startswith(view + settings.branch + "/"):
            rest = rest[len(view):]
            break
    if not rest.startswith(settings.branch + "/"):
        raise InvalidFileUrlError(f"branch {settings.branch!r} not found in URL: {url}")

    repo_path = rest[len(settings.branch) + 1:].strip("/")
    segments = repo_path.split("/")
    if not repo_path or any(s in ("", ".", "..") for s in segments):
        raise InvalidFileUrlError(f"no usable file path in URL: {url}")

    if repo_path == settings.index_path:
        raise InvalidFileUrlError(f"URL points at the index itself: {url}")

    if settings.curriculo_dir and not repo_path.startswith(settings.curriculo_dir + "/"):
        raise InvalidFileUrlError(
            f"{repo_path} is outside the upload directory {settings.curriculo_dir!r}"
        )
    return repo_path
