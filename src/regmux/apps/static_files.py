"""Static files fallback, checked by the router before any route.

Requests under the prefix are answered here and never reach a route or any
middleware. Two sources:

    * development: files are read from a directory on disk at request time,
      so edits show up without a restart
    * production: files come from a bundle shipped with the application
      (an importlib.resources Traversable), loaded and pre-compressed once at
      startup and served from memory with content negotiation

Install with: uv add "regmux[compress]"
"""

from __future__ import annotations

import logging
import mimetypes
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from regmux.responses import NOT_FOUND_BODY

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable

    from regmux.rsgi import HTTPProtocol, HTTPScope

try:
    from cramjam import (
        brotli,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
        gzip,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
        zstd,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
    )
except ImportError as e:
    msg = (
        "Static files app requires the 'compress' extra. "
        "Install with: uv add 'regmux[compress]'"
    )
    raise ImportError(msg) from e


type Encoding = Literal["zstd", "br", "gzip"]


@dataclass(frozen=True, slots=True)
class BundleEntry:
    """A bundled file held in memory, keyed by encoding ("identity" always present)."""

    content_type: str
    variants: dict[str, bytes]


@dataclass(slots=True)
class _BuildStats:
    files_total: int = 0
    files_compressed: int = 0  # Files that got at least one compressed variant
    variants_created: int = 0
    variants_skipped: int = 0  # Compression skipped (larger than original)
    original_bytes: int = 0
    compressed_bytes: int = 0


DEFAULT_COMPRESSIBLE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".css",
        ".js",
        ".mjs",
        ".cjs",
        ".html",
        ".htm",
        ".xml",
        ".svg",
        ".json",
        ".map",
        ".txt",
        ".md",
        ".wasm",
    }
)

# Pre-compressed sidecar files are skipped when loading a bundle
_COMPRESSED_SUFFIXES: frozenset[str] = frozenset({".zst", ".br", ".gz"})

_MAX_LEVELS: dict[str, int] = {"zstd": 22, "br": 11, "gzip": 9}

_TEXT_PLAIN = ("content-type", "text/plain; charset=utf-8")


def _compress(data: bytes, encoding: str) -> bytes:
    level = _MAX_LEVELS[encoding]
    if encoding == "zstd":
        return bytes(zstd.compress(data, level=level))
    elif encoding == "br":
        return bytes(brotli.compress(data, level=level))
    else:  # gzip
        return bytes(gzip.compress(data, level=level))


def _get_content_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or "application/octet-stream"


def _parse_accept_encoding(header: str) -> list[tuple[str, float]]:
    """Parse Accept-Encoding header into (encoding, quality) pairs."""
    encodings: list[tuple[str, float]] = []
    for part in header.split(","):
        part = part.strip()
        if not part:
            continue
        name, _, params = part.partition(";")
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 1.0
        encodings.append((name.strip().lower(), quality))
    return encodings


def _select_encoding(
    accept_encoding: str | None,
    server_priority: dict[str, int],
    available_encodings: Iterable[str],
) -> str:
    """Select the best available encoding for an Accept-Encoding header.

    Highest client quality wins, ties go to the server's priority order.
    Falls back to "identity" when nothing else is acceptable.
    """
    if accept_encoding is None:
        return "identity"

    wildcard_quality = 0.0
    explicit: dict[str, float] = {}
    for name, quality in _parse_accept_encoding(accept_encoding):
        if name == "*":
            wildcard_quality = quality
        else:
            explicit[name] = quality

    candidates: list[tuple[str, float, int]] = []
    for enc in available_encodings:
        if enc == "identity":
            continue
        quality = explicit.get(enc, wildcard_quality)
        if quality > 0:
            candidates.append((enc, quality, server_priority.get(enc, 999)))

    if not candidates:
        return "identity"
    candidates.sort(key=lambda c: (-c[1], c[2]))
    return candidates[0][0]


def _walk_bundle(node: Traversable, parent: str = "") -> Iterator[tuple[str, Traversable]]:
    """Yields (relative posix path, file) for every file below node."""
    for child in node.iterdir():
        rel = f"{parent}{child.name}"
        if child.is_dir():
            yield from _walk_bundle(child, rel + "/")
        elif child.is_file():
            yield rel, child


def _load_bundle(
    bundle: Traversable,
    encodings: tuple[str, ...],
    compressible_extensions: frozenset[str],
) -> tuple[dict[str, BundleEntry], _BuildStats]:
    entries: dict[str, BundleEntry] = {}
    stats = _BuildStats()

    for rel, file in _walk_bundle(bundle):
        ext = Path(rel).suffix
        if ext in _COMPRESSED_SUFFIXES:
            continue

        content = file.read_bytes()
        stats.files_total += 1
        stats.original_bytes += len(content)

        variants = {"identity": content}
        if ext.lower() in compressible_extensions:
            for encoding in encodings:
                compressed = _compress(content, encoding)
                if len(compressed) < len(content):  # only keep if it helps
                    variants[encoding] = compressed
                    stats.variants_created += 1
                    stats.compressed_bytes += len(compressed)
                else:
                    stats.variants_skipped += 1
            if len(variants) > 1:
                stats.files_compressed += 1

        entries[rel] = BundleEntry(
            content_type=_get_content_type(rel), variants=variants
        )

    return entries, stats


class StaticFiles:
    """Serves files under prefix from disk (development) or a bundle (production)."""

    __slots__ = (
        "_cache_control",
        "_directory",
        "_entries",
        "_index",
        "_server_priority",
        "is_production",
        "prefix",
    )

    def __init__(
        self,
        prefix: str,
        *,
        directory: Path | None,
        entries: dict[str, BundleEntry] | None,
        is_production: bool,
        index: str,
        server_priority: dict[str, int],
        cache_control: str,
    ) -> None:
        self.prefix = prefix
        self.is_production = is_production
        self._directory = directory
        self._entries = entries
        self._index = index
        self._server_priority = server_priority
        self._cache_control = cache_control

    def serve(self, scope: HTTPScope, proto: HTTPProtocol) -> bool:
        """Answers the request if its path is under prefix.

        Returns True when a response (file or 404) was sent, False when the
        path is not under prefix and routing should go ahead.
        """
        path = scope.path
        if path != self.prefix and not path.startswith(self.prefix + "/"):
            return False
        rel = path[len(self.prefix) :].lstrip("/")
        if self.is_production:
            self._serve_bundle(scope, proto, rel)
        else:
            self._serve_disk(proto, rel)
        return True

    def _serve_disk(self, proto: HTTPProtocol, rel: str) -> None:
        # Blocking filesystem calls on the event loop, development mode only
        try:
            file, size = self._find_on_disk(rel)
        except (OSError, ValueError) as e:  # ValueError: embedded null byte
            logger.debug("static: %r not found on disk (%s)", rel, e)
            proto.response_str(404, [_TEXT_PLAIN], NOT_FOUND_BODY)
            return
        proto.response_file(
            200,
            [
                ("content-type", _get_content_type(file.name)),
                ("content-length", str(size)),
                ("cache-control", "no-cache"),
            ],
            str(file),
        )

    def _find_on_disk(self, rel: str) -> tuple[Path, int]:
        """Returns the file for rel below the directory and its size.

        Raises OSError when there is no such file or rel leaves the directory.
        """
        assert self._directory is not None  # checked by static_files()
        candidate = (self._directory / rel).resolve()
        if not candidate.is_relative_to(self._directory):
            msg = f"refused, outside {self._directory}"
            raise PermissionError(msg)
        if candidate.is_dir():
            candidate = candidate / self._index
        if not candidate.is_file():
            msg = f"no file at {candidate}"
            raise FileNotFoundError(msg)
        return candidate, candidate.stat().st_size

    def _serve_bundle(self, scope: HTTPScope, proto: HTTPProtocol, rel: str) -> None:
        assert self._entries is not None  # checked by static_files()
        # dict lookups only, so there is no way out of the bundle
        if rel == "" or rel.endswith("/"):
            entry = self._entries.get(rel + self._index)
        else:
            entry = self._entries.get(rel) or self._entries.get(
                f"{rel}/{self._index}"
            )
        if entry is None:
            logger.debug("static: %r not found in bundle", rel)
            proto.response_str(404, [_TEXT_PLAIN], NOT_FOUND_BODY)
            return

        encoding = _select_encoding(
            scope.headers.get("accept-encoding"),
            self._server_priority,
            entry.variants.keys(),
        )
        body = entry.variants[encoding]
        headers = [
            ("content-type", entry.content_type),
            ("content-length", str(len(body))),
            ("cache-control", self._cache_control),
            ("vary", "accept-encoding"),
        ]
        if encoding != "identity":
            headers.append(("content-encoding", encoding))
        proto.response_bytes(200, headers, body)


def static_files(
    prefix: str,
    *,
    directory: Path | None = None,
    bundle: Traversable | None = None,
    is_production: bool = False,
    index: str = "index.html",
    encodings: Iterable[Encoding] = ("zstd", "br", "gzip"),
    compressible_extensions: Iterable[str] = DEFAULT_COMPRESSIBLE_EXTENSIONS,
    cache_control: str = "public, max-age=3600",
) -> StaticFiles:
    """Create the static files fallback for Router(static=...).

    Args:
        prefix: URL prefix the files are served under, e.g. "/static".
            "/static/app.js" is looked up as "app.js".
        directory: On-disk root, used when is_production is False.
        bundle: Files shipped with the application, used when is_production
            is True, e.g. importlib.resources.files("myapp") / "static".
            A pathlib.Path works too.
        is_production: Selects the bundle over the directory.
        index: File served for directory paths.
        encodings: Compression encodings for bundled files, in priority order.
        compressible_extensions: File extensions worth compressing.
        cache_control: cache-control header for bundled files.

    Example:
        from importlib.resources import files
        from pathlib import Path

        router = Router(
            static=static_files(
                "/static",
                directory=Path("./myapp/static"),
                bundle=files("myapp") / "static",
                is_production=os.environ.get("ENV") == "production",
            )
        )
    """
    prefix = prefix.rstrip("/")
    if not prefix.startswith("/"):
        msg = f"static prefix must start with '/' and not be the root, got {prefix=}"
        raise ValueError(msg)

    encodings_tuple = tuple(encodings)
    server_priority = {enc: i for i, enc in enumerate(encodings_tuple)}

    if is_production:
        if bundle is None:
            msg = "a bundle is required when is_production is True"
            raise ValueError(msg)
        start_time = time.perf_counter()
        entries, stats = _load_bundle(
            bundle, encodings_tuple, frozenset(compressible_extensions)
        )
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "static_files: %d files (%d compressed), "
            "%d variants created, %d skipped, %d -> %d bytes, %.1fms",
            stats.files_total,
            stats.files_compressed,
            stats.variants_created,
            stats.variants_skipped,
            stats.original_bytes,
            stats.compressed_bytes,
            elapsed_ms,
        )
        return StaticFiles(
            prefix,
            directory=None,
            entries=entries,
            is_production=True,
            index=index,
            server_priority=server_priority,
            cache_control=cache_control,
        )

    if directory is None:
        msg = "a directory is required when is_production is False"
        raise ValueError(msg)
    logger.info("static_files: serving %s from disk under %s", directory, prefix)
    return StaticFiles(
        prefix,
        directory=directory.resolve(),
        entries=None,
        is_production=False,
        index=index,
        server_priority=server_priority,
        cache_control=cache_control,
    )
