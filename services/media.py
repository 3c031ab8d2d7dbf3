# Attachment download and file-name helpers used by the relay handlers.
#
# Usage:
#   import services.media as media
#   result = await media.fetch(url, max_bytes=20_000_000)
#   if result:
#       data, content_type = result

import mimetypes

import aiohttp

import services.logger as log

l = log.get_logger()

_DEFAULT_MAX = 20 * 1024 * 1024  # 20 MB (Telegram bot API download limit)

_session: aiohttp.ClientSession | None = None

# Canonical extensions. Checked before ``mimetypes`` because the stdlib table
# answers "oga" for audio/ogg and "jpe" for image/jpeg on some platforms.
_MIME_EXT = {
    "image/jpeg":       "jpg",
    "image/png":        "png",
    "image/gif":        "gif",
    "image/webp":       "webp",
    "video/mp4":        "mp4",
    "video/webm":       "webm",
    "video/quicktime":  "mov",
    "audio/ogg":        "ogg",
    "audio/mpeg":       "mp3",
    "audio/mp4":        "m4a",
    "audio/x-m4a":      "m4a",
    "audio/aac":        "aac",
    "audio/amr":        "amr",
    "audio/flac":       "flac",
    "application/pdf":  "pdf",
    "application/zip":  "zip",
    "text/plain":       "txt",
}


def _get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession()
    return _session


async def close() -> None:
    global _session
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


async def fetch(url: str, max_bytes: int = _DEFAULT_MAX) -> tuple[bytes, str] | None:
    """
    Download *url* up to *max_bytes*.

    Returns ``(data, content_type)`` on success, or ``None`` if the URL is
    empty or the file is larger than *max_bytes*. Network and HTTP errors
    propagate so the caller can log them against the bridge.
    """
    if not url:
        return None

    session = _get_session()
    async with session.get(url, timeout=aiohttp.ClientTimeout(total=60)) as resp:
        resp.raise_for_status()
        cl = resp.headers.get("Content-Length")
        if cl and int(cl) > max_bytes:
            l.debug(f"media.fetch: skipping {url!r}: Content-Length {cl} > {max_bytes}")
            return None
        chunks: list[bytes] = []
        total = 0
        async for chunk in resp.content.iter_chunked(65536):
            total += len(chunk)
            if total > max_bytes:
                l.debug(f"media.fetch: {url!r} exceeded {max_bytes} bytes, aborting")
                return None
            chunks.append(chunk)
        return b"".join(chunks), resp.content_type or "application/octet-stream"


def extension_for(mime_type: str | None) -> str:
    """Canonical extension (without the dot) for *mime_type*; ``bin`` when unknown."""
    if not mime_type:
        return "bin"
    mime_type = mime_type.split(";")[0].strip().lower()
    if mime_type in _MIME_EXT:
        return _MIME_EXT[mime_type]
    guessed = mimetypes.guess_extension(mime_type)
    return guessed.lstrip(".") if guessed else "bin"


def extension_of_path(path: str) -> str:
    """Extension of the last path segment, or ``""`` if it has none."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1]
