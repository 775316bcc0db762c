"""Read wicked XML documents into raw interface descriptors."""

from __future__ import annotations

import bisect
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring
from pydantic import BaseModel, ValidationError

from .interface import RawInterface, iter_schema_children
from .models import LOOPBACK_NAME, DocumentParseError, DocumentReadError

LOG = logging.getLogger("wicked_migrate.reader")

# Fields that are known and intentionally dropped. Must stay sorted.
IGNORED_FIELDS = (
    "ipv4.arp-notify",
    "ipv4.forwarding",
    "ipv6.accept-dad",
    "ipv6.accept-ra",
    "ipv6.addr-gen-mode",
    "ipv6.autoconf",
    "ipv6.forwarding",
    "ipv6.stable-secret",
)

COLON_TAG_PATTERN = re.compile(r"<(/?)(\w+):(\w+)\b")
XML_DECLARATION_PATTERN = re.compile(r"^\s*<\?xml[^>]*\?>")
_ROOT_TAG = "wicked-config"


@dataclass
class InterfacesResult:
    """Interfaces read from one or more documents."""

    interfaces: list[RawInterface] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)

    def extend(self, other: InterfacesResult) -> None:
        self.interfaces.extend(other.interfaces)
        self.sources.extend(other.sources)


def is_ignored_field(path: str) -> bool:
    """Return True if the path is on the sorted ignore list."""
    index = bisect.bisect_left(IGNORED_FIELDS, path)
    return index < len(IGNORED_FIELDS) and IGNORED_FIELDS[index] == path


def replace_colons(text: str) -> str:
    """Rewrite ``<ipv4:static>`` style tags to ``<ipv4-static>``."""
    return COLON_TAG_PATTERN.sub(r"<\1\2-\3", text)


def unconsumed_paths(model: type[BaseModel], data: Any, prefix: str = "") -> list[str]:
    """Walk parsed data alongside a schema and list paths it never consults."""
    if not isinstance(data, dict):
        return []
    children = iter_schema_children(model)
    paths: list[str] = []
    for key, value in data.items():
        path = f"{prefix}{key}"
        if key not in children:
            paths.append(path)
            continue
        nested = children[key]
        if nested is None:
            continue
        items = value if isinstance(value, list) else [value]
        for item in items:
            paths.extend(unconsumed_paths(nested, item, f"{path}."))
    return list(dict.fromkeys(paths))


def _element_to_data(element: Element) -> Any:
    """Convert an element into nested dicts, lists and stripped strings."""
    for name in element.attrib:
        LOG.debug("Dropping attribute %s of <%s>", name, element.tag)
    children = list(element)
    if not children:
        return (element.text or "").strip()
    data: dict[str, Any] = {}
    for child in children:
        value = _element_to_data(child)
        if child.tag not in data:
            data[child.tag] = value
        elif isinstance(data[child.tag], list):
            data[child.tag].append(value)
        else:
            data[child.tag] = [data[child.tag], value]
    return data


def _format_location(index: int, loc: Iterable[Any]) -> str:
    parts = [f"interface[{index}]"]
    parts.extend(str(part) for part in loc)
    return ".".join(parts)


def deserialize_xml(contents: str, source: str = "<string>") -> InterfacesResult:
    """Parse a document holding one or more ``<interface>`` elements."""
    body = XML_DECLARATION_PATTERN.sub("", replace_colons(contents), count=1)
    try:
        root = fromstring(f"<{_ROOT_TAG}>{body}</{_ROOT_TAG}>")
    except (ParseError, DefusedXmlException) as exc:
        raise DocumentParseError(f"Failed to parse {source}: {exc}") from exc

    result = InterfacesResult(sources=[source])
    index = -1
    for element in root:
        if element.tag != "interface":
            LOG.debug("Skipping <%s> element in %s", element.tag, source)
            continue
        index += 1
        data = _element_to_data(element)
        try:
            interface = RawInterface.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as exc:
            for error in exc.errors():
                LOG.error("Error at %s: %s", _format_location(index, error["loc"]), error["msg"])
            raise DocumentParseError(f"Invalid interface in {source}: {exc}") from exc

        unhandled = []
        for path in unconsumed_paths(RawInterface, data):
            if is_ignored_field(path):
                LOG.debug("Ignored field in interface %s: %s", interface.name, path)
            else:
                unhandled.append(path)
        if unhandled:
            interface = interface.model_copy(update={"unhandled_fields": tuple(unhandled)})
        result.interfaces.append(interface)
    return result


def read_xml_file(path: Path) -> InterfacesResult:
    """Read and parse a single XML document."""
    try:
        contents = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(f"Couldn't read {path}: {exc}") from exc
    LOG.debug("Reading %s", path)
    return deserialize_xml(contents, source=str(path))


def _iter_xml_files(path: Path) -> list[Path]:
    """Return every ``*.xml`` file below a directory, sorted."""
    files = []
    for candidate in sorted(path.rglob("*")):
        if not candidate.is_file():
            continue
        if candidate.suffix != ".xml":
            LOG.debug("Skipping non-XML file %s", candidate)
            continue
        files.append(candidate)
    return files


def read_files(paths: Iterable[str | Path]) -> InterfacesResult:
    """Read files and directories (recursively) into one result."""
    result = InterfacesResult()
    for raw_path in paths:
        path = Path(raw_path)
        if path.is_dir():
            for file_path in _iter_xml_files(path):
                result.extend(read_xml_file(file_path))
        else:
            result.extend(read_xml_file(path))
    return result


def read(paths: list[str]) -> InterfacesResult:
    """Read interfaces from paths, or from stdin when the only path is ``-``."""
    if paths == ["-"]:
        try:
            contents = sys.stdin.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(f"Couldn't read <stdin>: {exc}") from exc
        result = deserialize_xml(contents, source="<stdin>")
    else:
        result = read_files(paths)

    kept = []
    for interface in result.interfaces:
        if interface.name == LOOPBACK_NAME:
            LOG.debug("Skipping loopback interface %s", interface.name)
            continue
        kept.append(interface)
    result.interfaces = kept
    return result
