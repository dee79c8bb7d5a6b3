"""Knowledge-base document sources.

A source is either one JSON file holding a list of documents, or a
directory of files handled by extension-specific parsers. A missing source
is not an error: it yields no documents and the service runs with an empty
index.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from kb_concierge.types import SourceDocument

logger = logging.getLogger(__name__)

_HEADER_LINE = re.compile(r"^(?P<key>[A-Za-z_][\w-]*)\s*:\s*(?P<value>.*)$")
_URL_KEYS = ("canonical_url", "url")


class Parser(ABC):
    """Base parser interface for one KB file format."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, path: Path) -> list[SourceDocument]:
        """Parse a file into zero or more documents."""


class TextParser(Parser):
    """Plain text or markdown with an optional ``key: value`` header block.

    The header ends at the first blank line. Recognised keys are ``title``,
    ``canonical_url`` (or ``url``) and ``updated_at``; the title defaults to
    the first markdown heading, then to the file stem.
    """

    extensions = (".txt", ".md", ".markdown")

    def parse(self, path: Path) -> list[SourceDocument]:
        text = path.read_text(encoding="utf-8")
        headers, body = _split_header(text)
        title = headers.get("title") or _first_heading(body) or path.stem
        url = next((headers[key] for key in _URL_KEYS if headers.get(key)), "")
        return [
            SourceDocument(
                title=title,
                body=body,
                url=url,
                updated_at=headers.get("updated_at", ""),
            )
        ]


class JsonParser(Parser):
    """A JSON object or list of objects with ``title`` and ``body``."""

    extensions = (".json",)

    def parse(self, path: Path) -> list[SourceDocument]:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("documents", [payload])
        if not isinstance(payload, list):
            raise ValueError(f"Expected a list of documents in {path}")

        documents: list[SourceDocument] = []
        for index, item in enumerate(payload):
            if not isinstance(item, dict):
                raise ValueError(f"Document #{index} in {path} is not an object")
            body = str(item.get("body") or item.get("text") or "")
            documents.append(
                SourceDocument(
                    title=str(item.get("title") or f"{path.stem}-{index}"),
                    body=body,
                    url=str(next((item[key] for key in _URL_KEYS if item.get(key)), "")),
                    updated_at=str(item.get("updated_at") or ""),
                )
            )
        return documents


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), JsonParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in self._parsers

    def parse_path(self, path: str | Path) -> list[SourceDocument]:
        file_path = Path(path)
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path)


def load_documents(
    path: str | Path | None, *, registry: ParserRegistry | None = None
) -> list[SourceDocument]:
    """Load every KB document under ``path`` in a stable order."""

    if not path:
        return []
    source = Path(path)
    if not source.exists():
        logger.warning("KB source %s not found; starting with an empty index", source)
        return []

    parsers = registry or ParserRegistry()
    if source.is_file():
        return _parse_or_skip(parsers, source)

    documents: list[SourceDocument] = []
    for file_path in sorted(p for p in source.rglob("*") if p.is_file()):
        if not parsers.supports(file_path):
            logger.debug("Skipping unsupported KB file %s", file_path)
            continue
        documents.extend(_parse_or_skip(parsers, file_path))
    return documents


def _parse_or_skip(parsers: ParserRegistry, path: Path) -> list[SourceDocument]:
    # Covers unreadable files, bad encodings, invalid JSON and wrong shapes.
    try:
        return parsers.parse_path(path)
    except (OSError, ValueError):
        logger.warning("Skipping KB file %s: it could not be parsed", path, exc_info=True)
        return []


def _split_header(text: str) -> tuple[dict[str, str], str]:
    lines = text.splitlines()
    headers: dict[str, str] = {}
    for index, line in enumerate(lines):
        if not line.strip():
            if headers:
                return headers, "\n".join(lines[index + 1 :]).strip()
            break
        match = _HEADER_LINE.match(line)
        if match is None:
            break
        headers[match.group("key").lower()] = match.group("value").strip()
    # No blank line after a header block means there was no header.
    return {}, text.strip()


def _first_heading(body: str) -> str:
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            return stripped.lstrip("#").strip()
    return ""
