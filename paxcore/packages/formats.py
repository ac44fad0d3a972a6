# paxcore/packages/formats.py
from __future__ import annotations

import logging
import tomllib
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

import json5
import tomli_w
import yaml
from pydantic import ValidationError

from paxcore.core.errors import MalformedManifest, ManifestReadError, UnsupportedExtension
from paxcore.packages import ron
from paxcore.packages.model import PackageNode, nodeFromDocument

logger = logging.getLogger(__name__)

__all__ = [
    "MANIFEST_FILE_STEM",
    "ManifestFormat",
    "parseManifest",
    "parseManifestFile",
    "isManifestFileName",
]



MANIFEST_FILE_STEM = "manifest"



def _decodeYaml(text: str) -> Any:
    return yaml.safe_load(text)



def _encodeYaml(document: Any) -> str:
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)



def _decodeJson(text: str) -> Any:
    return json5.loads(text)



def _encodeJson(document: Any) -> str:
    # Plain JSON output: quoted keys, no trailing commas.
    return json5.dumps(document, indent=2, quote_keys=True, trailing_commas=False) + "\n"



def _decodeToml(text: str) -> Any:
    return tomllib.loads(text)



def _encodeToml(document: Any) -> str:
    return tomli_w.dumps(document)



def _decodeRon(text: str) -> Any:
    return ron.loads(text)



def _encodeRon(document: Any) -> str:
    return ron.dumps(document) + "\n"



class ManifestFormat(Enum):
    """
    Closed set of manifest serialization formats.

    Each member carries its file extensions, its decoder and its encoder;
    adding a format means adding one member here.
    """
    YAML = ("yaml", ("yaml", "yml"), _decodeYaml, _encodeYaml)
    JSON = ("json", ("json",), _decodeJson, _encodeJson)
    TOML = ("toml", ("toml",), _decodeToml, _encodeToml)
    RON = ("ron", ("ron",), _decodeRon, _encodeRon)

    def __init__(
        self,
        label: str,
        extensions: tuple[str, ...],
        decoder: Callable[[str], Any],
        encoder: Callable[[Any], str],
    ) -> None:
        self.label = label
        self.extensions = extensions
        self._decoder = decoder
        self._encoder = encoder

    def decode(self, text: str) -> Any:
        return self._decoder(text)

    def encode(self, document: Any) -> str:
        """
        Serialize plain data (as produced by Version.toManifest) in this
        format. Documents must not contain None, which TOML cannot express.
        """
        return self._encoder(document)

    @classmethod
    def validExtensions(cls) -> tuple[str, ...]:
        return tuple(ext for fmt in cls for ext in fmt.extensions)

    @classmethod
    def fromExtension(cls, extension: str, *, path: Path | None = None) -> ManifestFormat:
        normalized = extension.strip().lstrip(".").lower()
        for fmt in cls:
            if normalized in fmt.extensions:
                return fmt
        raise UnsupportedExtension(extension, cls.validExtensions(), path=path)

    @classmethod
    def fromPath(cls, path: Path) -> ManifestFormat:
        return cls.fromExtension(path.suffix, path=path)



def isManifestFileName(name: str) -> bool:
    stem, dot, extension = name.rpartition(".")
    if not dot or stem != MANIFEST_FILE_STEM:
        return False
    return extension.lower() in ManifestFormat.validExtensions()



def parseManifest(
    data: bytes | str,
    fmt: ManifestFormat,
    *,
    path: Path | None = None,
) -> PackageNode:
    """
    Decode manifest bytes in the given format into one package node.

    The returned node is unattached: a FlavoredPackage lists its flavor
    names but carries no child nodes until the tree builder links them.

    Raises:
        MalformedManifest: the bytes do not decode, or the document does
            not match the manifest schema.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8-sig")
        except UnicodeDecodeError as err:
            raise MalformedManifest(path, fmt.label, err) from err
    else:
        text = data

    try:
        document = fmt.decode(text)
    except Exception as err:
        # Each decoder raises its own error type (YAMLError, ValueError, TOMLDecodeError, ...)
        raise MalformedManifest(path, fmt.label, err) from err

    try:
        return nodeFromDocument(document)
    except (ValidationError, ValueError) as err:
        raise MalformedManifest(path, fmt.label, err) from err



def parseManifestFile(path: Path) -> PackageNode:
    fmt = ManifestFormat.fromPath(path)
    try:
        data = path.read_bytes()
    except OSError as err:
        raise ManifestReadError(path, err) from err
    node = parseManifest(data, fmt, path=path)
    logger.debug("Parsed %s manifest '%s' (%s)", fmt.label, path, type(node).__name__)
    return node
