"""
Turn ClickUp rich text into ordered content blocks.

Comments arrive as a list of rich-text items; task descriptions arrive as
markdown plus an attachment list. Both become text blocks interleaved with
``ImageReference`` blocks, which the image allocator resolves later.

Only thumbnails are offered as image candidates (largest first), never the
original upload. Images embedded as ``data:`` URIs become inline references
and their payload is kept out of the text.
"""

import json
import logging
import re
from pathlib import PurePosixPath
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from .images import parse_data_uri
from .types import ImageReference, PendingBlock, Record, TextBlock

logger = logging.getLogger(__name__)

INLINE_IMAGE_LABEL = "[inline image data]"

_MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_IMAGE_EXTENSION_RE = re.compile(r"\.(jpe?g|png|gif|webp|svg)$", re.IGNORECASE)

_THUMBNAIL_KEYS = ("thumbnail_large", "thumbnail_medium", "thumbnail_small")


class _BlockBuilder:
    """Accumulates text and flushes it as a block before each image."""

    def __init__(self):
        self.blocks: list[PendingBlock] = []
        self._text = ""

    def add_text(self, text: str) -> None:
        self._text += text

    def flush(self) -> None:
        if self._text.strip():
            self.blocks.append(TextBlock(self._text.strip()))
        self._text = ""

    def add_image(self, ref: ImageReference) -> None:
        self.flush()
        self.blocks.append(ref)


def _thumbnails(source: Optional[dict[str, Any]]) -> tuple[str, ...]:
    if not source:
        return ()
    return tuple(source[k] for k in _THUMBNAIL_KEYS if source.get(k))


def _data_attachment_thumbnails(attributes: Any) -> dict[str, Any]:
    """Thumbnails from the ``data-attachment`` attribute JSON.

    The top-level thumbnail URLs in comment payloads are sometimes broken;
    the ones in ``data-attachment`` work.
    """
    if not isinstance(attributes, dict) or not attributes.get("data-attachment"):
        return {}
    try:
        data = json.loads(attributes["data-attachment"])
    except (TypeError, ValueError) as e:
        logger.debug("Unparseable data-attachment: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def process_clickup_text(items: Iterable[Any]) -> list[PendingBlock]:
    """Convert comment rich-text items into text and image blocks."""
    builder = _BlockBuilder()

    for item in items or []:
        if not isinstance(item, dict):
            continue
        image = item.get("image")
        if item.get("type") == "image" and isinstance(image, dict) and image.get("url"):
            name = image.get("name") or image.get("title") or "image"
            alt = item.get("text") or name
            inline = parse_data_uri(image["url"])
            if inline is not None:
                builder.add_text(f"\nImage: {name} - {INLINE_IMAGE_LABEL}")
                builder.add_image(ImageReference(alt=alt, inline=inline))
                continue

            builder.add_text(f"\nImage: {name} - {image['url']}")
            extracted = _data_attachment_thumbnails(item.get("attributes"))
            urls = tuple(
                extracted.get(k) or image.get(k)
                for k in _THUMBNAIL_KEYS
                if extracted.get(k) or image.get(k)
            )
            # Without thumbnails the image stays a plain file reference
            if urls:
                builder.add_image(ImageReference(urls=urls, alt=alt))
        elif isinstance(item.get("text"), str):
            builder.add_text(item["text"])
        else:
            # Bookmarks, mentions and whatever else ClickUp invents
            builder.add_text(json.dumps(item, ensure_ascii=False))

    builder.flush()
    return builder.blocks


def _file_name(url: str) -> Optional[str]:
    try:
        name = PurePosixPath(urlparse(url).path).name
    except ValueError:
        return None
    return name or None


def process_clickup_markdown(
    markdown: str,
    attachments: Optional[Iterable[Record]] = None,
) -> list[PendingBlock]:
    """
    Split a markdown description at image references.

    Images are matched against ``attachments`` by URL to find thumbnails.
    Non-image attachments not referenced in the markdown are listed as
    ``File:`` lines at the end.
    """
    by_url = {
        a["url"]: a for a in attachments or []
        if isinstance(a, dict) and isinstance(a.get("url"), str)
    }
    builder = _BlockBuilder()
    referenced: set[str] = set()
    last = 0

    for match in _MARKDOWN_IMAGE_RE.finditer(markdown or ""):
        alt, url = match.group(1), match.group(2)
        referenced.add(url)
        builder.add_text(markdown[last:match.start()])
        last = match.end()

        inline = parse_data_uri(url)
        if inline is not None:
            builder.add_text(f"\nImage: {alt or 'image'} - {INLINE_IMAGE_LABEL}")
            builder.add_image(ImageReference(alt=alt or "image", inline=inline))
            continue

        attachment = by_url.get(url)
        if attachment is None:
            builder.add_text(match.group(0))
            logger.debug("Image URL %s not found in attachments", url)
            continue

        builder.add_text(f"\nImage: {alt or 'image'} - {url}")
        urls = _thumbnails(attachment)
        if urls:
            builder.add_image(ImageReference(urls=urls, alt=alt or "image"))

    builder.add_text((markdown or "")[last:])

    for url, attachment in by_url.items():
        if url in referenced:
            continue
        if attachment.get("thumbnail_large") or _IMAGE_EXTENSION_RE.search(url):
            continue
        name = _file_name(url) or "file"
        suffix = PurePosixPath(name).suffix.lstrip(".")
        kind = f" ({suffix.upper()})" if suffix else ""
        builder.add_text(f"\nFile: {name}{kind} - {url}")

    builder.flush()
    return builder.blocks
