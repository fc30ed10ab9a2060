"""
Image budgeting for tool responses.

Responses are assembled as a sequence of text blocks and lazy
``ImageReference`` blocks, oldest content first. Before a response leaves
the server the references are resolved in two stages:

1. Count limiting: only the most recent ``max_count`` references survive;
   older ones become text placeholders.
2. Size limiting: whatever the text leaves of ``max_bytes`` is split evenly
   across the surviving references. Each reference tries its candidate URLs
   largest first and keeps the first one that fits its share. A
   ``Content-Length`` above budget aborts the transfer immediately; without
   the header the body is streamed and abandoned as soon as it outgrows the
   budget.

A reference whose candidates all fail or are too large becomes a text
placeholder. Transport errors on one candidate are logged and the next
candidate is tried.
"""

import asyncio
import base64
import logging
import re
from typing import Optional, Sequence

import httpx

from .types import (
    ContentBlock,
    ImageBlock,
    ImageReference,
    InlineImage,
    PendingBlock,
    TextBlock,
    serialized_size,
)

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"
DOWNLOAD_TIMEOUT = 30.0

_DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Data URIs
# ---------------------------------------------------------------------------

def parse_data_uri(uri: str) -> Optional[InlineImage]:
    """Parse ``data:<mime>;base64,<payload>``. None if not a base64 data URI."""
    if not uri.startswith("data:"):
        return None
    match = _DATA_URI_RE.match(uri)
    if not match:
        return None
    payload = _WHITESPACE_RE.sub("", match.group(2))
    if not payload:
        return None
    return InlineImage(mime_type=match.group(1), base64_data=payload)


def estimate_base64_size(data: str) -> int:
    """Decoded byte size of base64 data without decoding it."""
    sanitized = _WHITESPACE_RE.sub("", data)
    padding = 2 if sanitized.endswith("==") else 1 if sanitized.endswith("=") else 0
    return max(0, len(sanitized) * 3 // 4 - padding)


# ---------------------------------------------------------------------------
# Placeholders
# ---------------------------------------------------------------------------

def count_placeholder(ref: ImageReference) -> TextBlock:
    label = f": {ref.alt}" if ref.alt else ""
    return TextBlock(
        f"[Image removed{label}. Only the most recent images are shown.]"
    )


def size_placeholder(ref: ImageReference) -> TextBlock:
    label = f": {ref.alt}" if ref.alt else ""
    url = f" - {ref.urls[0]}" if ref.urls else ""
    return TextBlock(f"[Image unavailable{label} (exceeds response size limit){url}]")


# ---------------------------------------------------------------------------
# Downloading
# ---------------------------------------------------------------------------

class ImageFetcher:
    """Downloads candidate images within a byte budget.

    Image URLs point at arbitrary hosts (ClickUp's attachment CDN), so this
    client carries no ClickUp credentials.
    """

    def __init__(
        self,
        *,
        timeout: float = DOWNLOAD_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch(self, url: str, budget: float) -> Optional[ImageBlock]:
        """
        Download one candidate.

        Returns:
            The image, or None if it failed or doesn't fit ``budget`` bytes
        """
        try:
            async with self._client.stream("GET", url) as resp:
                if resp.status_code >= 400:
                    logger.warning("Failed to fetch image from %s: %d", url, resp.status_code)
                    return None

                content_length = resp.headers.get("Content-Length")
                if content_length and content_length.isdigit():
                    size = int(content_length)
                    if size > budget:
                        # Leaving the stream context aborts the transfer
                        logger.info(
                            "Image from %s is %d bytes (Content-Length), exceeds budget of %d bytes",
                            url, size, budget,
                        )
                        return None

                chunks: list[bytes] = []
                received = 0
                async for chunk in resp.aiter_bytes():
                    received += len(chunk)
                    if received > budget:
                        logger.info(
                            "Image from %s exceeds budget of %d bytes after %d bytes, aborting",
                            url, budget, received,
                        )
                        return None
                    chunks.append(chunk)

                mime_type = resp.headers.get("Content-Type", DEFAULT_MIME_TYPE).split(";")[0].strip()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Error fetching image from %s: %s", url, e)
            return None

        data = b"".join(chunks)
        return ImageBlock(
            data=base64.b64encode(data).decode("ascii"),
            mime_type=mime_type or DEFAULT_MIME_TYPE,
        )


async def resolve_reference(
    ref: ImageReference,
    budget: float,
    fetcher: ImageFetcher,
) -> ContentBlock:
    """Resolve one reference to an image within ``budget``, or a placeholder."""
    if ref.inline is not None:
        size = estimate_base64_size(ref.inline.base64_data)
        if 0 < budget and size <= budget:
            return ImageBlock(
                data=ref.inline.base64_data,
                mime_type=ref.inline.mime_type or DEFAULT_MIME_TYPE,
            )
        logger.info("Inline image %r is %d bytes, exceeds budget of %d bytes", ref.alt, size, budget)
        return size_placeholder(ref)

    if budget <= 0:
        return size_placeholder(ref)

    for url in ref.urls:
        image = await fetcher.fetch(url, budget)
        if image is not None:
            return image
    return size_placeholder(ref)


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------

def limit_image_count(blocks: Sequence[PendingBlock], max_count: int) -> list[PendingBlock]:
    """Replace all but the last ``max_count`` references with placeholders."""
    ref_positions = [i for i, b in enumerate(blocks) if isinstance(b, ImageReference)]
    excess = len(ref_positions) - max(0, max_count)
    if excess <= 0:
        return list(blocks)
    removed = set(ref_positions[:excess])
    logger.debug("Dropping %d of %d images over the count limit", excess, len(ref_positions))
    return [
        count_placeholder(b) if i in removed else b  # type: ignore[arg-type]
        for i, b in enumerate(blocks)
    ]


def per_image_budget(blocks: Sequence[PendingBlock], max_bytes: int) -> float:
    """Even share of the bytes left after the non-reference content."""
    refs = sum(1 for b in blocks if isinstance(b, ImageReference))
    if refs == 0:
        return 0.0
    resolved = [b for b in blocks if not isinstance(b, ImageReference)]
    available = max(0, max_bytes - serialized_size(resolved))  # type: ignore[arg-type]
    return available / refs


async def allocate_images(
    blocks: Sequence[PendingBlock],
    max_count: int,
    max_bytes: int,
    fetcher: Optional[ImageFetcher] = None,
) -> list[ContentBlock]:
    """
    Resolve every ImageReference in ``blocks`` under count and size limits.

    Args:
        blocks: Response content, oldest first
        max_count: Maximum number of images to keep
        max_bytes: Total response budget in bytes
        fetcher: Downloader to use; a temporary one is created if omitted

    Returns:
        Blocks in the original order, with references replaced by images
        or text placeholders
    """
    limited = limit_image_count(blocks, max_count)
    if not any(isinstance(b, ImageReference) for b in limited):
        return limited  # type: ignore[return-value]

    budget = per_image_budget(limited, max_bytes)

    async def resolve_all(active: ImageFetcher) -> list[ContentBlock]:
        async def resolve(block: PendingBlock) -> ContentBlock:
            if isinstance(block, ImageReference):
                return await resolve_reference(block, budget, active)
            return block

        return list(await asyncio.gather(*(resolve(b) for b in limited)))

    if fetcher is not None:
        return await resolve_all(fetcher)
    async with ImageFetcher() as owned:
        return await resolve_all(owned)
