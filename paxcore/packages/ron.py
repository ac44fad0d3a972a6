# paxcore/packages/ron.py
"""
Decoder and a small encoder for Rusty Object Notation (RON) documents.

The output uses plain Python data so manifests validate the same way
regardless of their format:

    Package(name: "foo", versions: [])   -> {"name": "foo", "versions": []}
    (a: 1)                               -> {"a": 1}
    (1, "x")                             -> [1, "x"]
    {"clone": (repository: "u")}         -> {"clone": {"repository": "u"}}
    Some(3) / None / ()                  -> 3 / None / None
    Clone                                -> "Clone"   (unit enum variant)

Struct names are ignored, as serde does by default.
"""
from __future__ import annotations

import re
from typing import Any

__all__ = ["RonDecodeError", "loads", "dumps"]

_IDENT_RE = re.compile(r"r#[A-Za-z_][A-Za-z0-9_]*|[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(
    r"[+-]?(?:"
    r"0x[0-9A-Fa-f_]+|0o[0-7_]+|0b[01_]+"
    r"|(?:[0-9][0-9_]*)?\.?[0-9][0-9_]*(?:[eE][+-]?[0-9_]+)?"
    r"|inf|NaN"
    r")"
)
_SIMPLE_ESCAPES = {
    '"': '"', "'": "'", "\\": "\\", "/": "/",
    "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t", "0": "\0",
}



class RonDecodeError(ValueError):
    def __init__(self, message: str, text: str, pos: int) -> None:
        line = text.count("\n", 0, pos) + 1
        column = pos - (text.rfind("\n", 0, pos) + 1) + 1
        super().__init__(f"{message} (line {line}, column {column})")
        self.line = line
        self.column = column



class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    # ----- Lexing helpers -----

    def error(self, message: str) -> RonDecodeError:
        return RonDecodeError(message, self.text, self.pos)

    def skipTrivia(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch in " \t\r\n":
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end + 1
            elif text.startswith("/*", self.pos):
                self.skipBlockComment()
            else:
                break

    def skipBlockComment(self) -> None:
        # Block comments nest in RON.
        depth = 0
        while self.pos < len(self.text):
            if self.text.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            elif self.text.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        raise self.error("Unterminated block comment")

    def peek(self) -> str:
        self.skipTrivia()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            found = self.text[self.pos] if self.pos < len(self.text) else "end of input"
            raise self.error(f"Expected {ch!r}, found {found!r}")
        self.pos += 1

    def consume(self, ch: str) -> bool:
        if self.peek() == ch:
            self.pos += 1
            return True
        return False

    # ----- Grammar -----

    def parseDocument(self) -> Any:
        self.skipExtensions()
        value = self.parseValue()
        if self.peek():
            raise self.error("Trailing characters after document")
        return value

    def skipExtensions(self) -> None:
        # #![enable(implicit_some)] style attributes carry no data for us.
        while self.peek() == "#":
            end = self.text.find("]", self.pos)
            if end == -1:
                raise self.error("Unterminated attribute")
            self.pos = end + 1

    def parseValue(self) -> Any:
        ch = self.peek()
        if not ch:
            raise self.error("Unexpected end of input")
        if ch == "[":
            return self.parseList()
        if ch == "{":
            return self.parseMap()
        if ch == "(":
            return self.parseParenthesized()
        if ch == '"':
            return self.parseString()
        if ch == "'":
            return self.parseChar()
        if ch == "r" and self.atRawString():
            return self.parseRawString()
        if ch.isdigit() or ch in "+-.":
            return self.parseNumber()
        mtch = _IDENT_RE.match(self.text, self.pos)
        if mtch:
            return self.parseIdentValue(mtch.group())
        raise self.error(f"Unexpected character {ch!r}")

    def parseIdentValue(self, ident: str) -> Any:
        self.pos += len(ident)
        name = ident[2:] if ident.startswith("r#") else ident
        if ident == "true":
            return True
        if ident == "false":
            return False
        if ident in ("inf", "NaN"):
            return float(ident.replace("NaN", "nan"))
        if ident == "None" and self.peek() != "(":
            return None
        if self.peek() == "(":
            if ident == "Some":
                self.expect("(")
                inner = self.parseValue()
                self.consume(",")
                self.expect(")")
                return inner
            return self.parseParenthesized()
        # Unit struct or unit enum variant.
        return name

    def parseList(self) -> list[Any]:
        self.expect("[")
        items: list[Any] = []
        while not self.consume("]"):
            items.append(self.parseValue())
            if not self.consume(","):
                self.expect("]")
                break
        return items

    def parseMap(self) -> dict[Any, Any]:
        self.expect("{")
        out: dict[Any, Any] = {}
        while not self.consume("}"):
            key = self.parseValue()
            if isinstance(key, (list, dict)):
                raise self.error("Map keys must be scalar values")
            self.expect(":")
            out[key] = self.parseValue()
            if not self.consume(","):
                self.expect("}")
                break
        return out

    def parseParenthesized(self) -> Any:
        """Either a struct body `(field: value, ...)`, a tuple, or unit `()`."""
        self.expect("(")
        if self.consume(")"):
            return None
        if self.looksLikeField():
            fields: dict[str, Any] = {}
            while True:
                mtch = _IDENT_RE.match(self.text, self.pos)
                if mtch is None:
                    raise self.error("Expected field name")
                name = mtch.group()
                self.pos += len(name)
                if name.startswith("r#"):
                    name = name[2:]
                if name in fields:
                    raise self.error(f"Duplicate field {name!r}")
                self.expect(":")
                fields[name] = self.parseValue()
                if not self.consume(","):
                    self.expect(")")
                    return fields
                if self.consume(")"):
                    return fields
                self.skipTrivia()
        items: list[Any] = []
        while True:
            items.append(self.parseValue())
            if not self.consume(","):
                self.expect(")")
                break
            if self.consume(")"):
                break
        # A one-element tuple is a newtype wrapper.
        return items[0] if len(items) == 1 else items

    def looksLikeField(self) -> bool:
        self.skipTrivia()
        mtch = _IDENT_RE.match(self.text, self.pos)
        if mtch is None:
            return False
        after = mtch.end()
        while after < len(self.text) and self.text[after] in " \t\r\n":
            after += 1
        return self.text.startswith(":", after)

    def parseString(self) -> str:
        self.expect('"')
        chunks: list[str] = []
        text = self.text
        while True:
            if self.pos >= len(text):
                raise self.error("Unterminated string")
            ch = text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chunks)
            if ch == "\\":
                chunks.append(self.parseEscape())
                continue
            chunks.append(ch)
            self.pos += 1

    def parseEscape(self) -> str:
        self.pos += 1
        if self.pos >= len(self.text):
            raise self.error("Unterminated escape sequence")
        code = self.text[self.pos]
        if code in _SIMPLE_ESCAPES:
            self.pos += 1
            return _SIMPLE_ESCAPES[code]
        if code == "u":
            self.pos += 1
            if self.text.startswith("{", self.pos):
                end = self.text.find("}", self.pos)
                if end == -1:
                    raise self.error("Unterminated unicode escape")
                digits = self.text[self.pos + 1:end]
                self.pos = end + 1
            else:
                digits = self.text[self.pos:self.pos + 4]
                self.pos += 4
            try:
                return chr(int(digits.replace("_", ""), 16))
            except ValueError:
                raise self.error(f"Invalid unicode escape {digits!r}") from None
        if code == "x":
            digits = self.text[self.pos + 1:self.pos + 3]
            self.pos += 3
            try:
                return chr(int(digits, 16))
            except ValueError:
                raise self.error(f"Invalid hex escape {digits!r}") from None
        if code == "\n":
            # Line continuation: skip the newline and leading whitespace.
            self.pos += 1
            while self.pos < len(self.text) and self.text[self.pos] in " \t\r\n":
                self.pos += 1
            return ""
        raise self.error(f"Unknown escape sequence '\\{code}'")

    def atRawString(self) -> bool:
        # r"..." and r#"..."# are strings, r#ident is a raw identifier.
        after = self.pos + 1
        while after < len(self.text) and self.text[after] == "#":
            after += 1
        return self.text.startswith('"', after)

    def parseRawString(self) -> str:
        self.pos += 1  # r
        hashes = 0
        while self.pos < len(self.text) and self.text[self.pos] == "#":
            hashes += 1
            self.pos += 1
        self.expect('"')
        terminator = '"' + "#" * hashes
        end = self.text.find(terminator, self.pos)
        if end == -1:
            raise self.error("Unterminated raw string")
        value = self.text[self.pos:end]
        self.pos = end + len(terminator)
        return value

    def parseChar(self) -> str:
        self.expect("'")
        if self.pos < len(self.text) and self.text[self.pos] == "\\":
            value = self.parseEscape()
        elif self.pos < len(self.text):
            value = self.text[self.pos]
            self.pos += 1
        else:
            raise self.error("Unterminated char literal")
        if not self.text.startswith("'", self.pos):
            raise self.error("Char literal must hold exactly one character")
        self.pos += 1
        return value

    def parseNumber(self) -> int | float:
        self.skipTrivia()
        mtch = _NUMBER_RE.match(self.text, self.pos)
        if mtch is None or not mtch.group():
            raise self.error("Invalid number")
        raw = mtch.group()
        self.pos = mtch.end()
        digits = raw.replace("_", "")
        sign = -1 if digits.startswith("-") else 1
        body = digits.lstrip("+-")
        for prefix, base in (("0x", 16), ("0o", 8), ("0b", 2)):
            if body.startswith(prefix):
                return sign * int(body[2:], base)
        if body in ("inf", "NaN"):
            return sign * float(body.replace("NaN", "nan"))
        if any(ch in body for ch in ".eE"):
            return float(digits)
        return int(digits)



def loads(text: str) -> Any:
    """Decode a RON document into plain Python data."""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("utf-8")
    return _Parser(text).parseDocument()



_ENCODE_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}
_KEYWORDS = frozenset({"true", "false", "None", "Some", "inf", "NaN"})


def _isFieldName(key: Any) -> bool:
    return isinstance(key, str) and key not in _KEYWORDS and re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key) is not None


def _dumpString(value: str) -> str:
    out: list[str] = []
    for ch in value:
        if ch in _ENCODE_ESCAPES:
            out.append(_ENCODE_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _dumpValue(value: Any, indent: str) -> str:
    inner = indent + "    "
    if value is None:
        return "None"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value != value:
            return "NaN"
        if value in (float("inf"), float("-inf")):
            return "inf" if value > 0 else "-inf"
        return repr(value)
    if isinstance(value, str):
        return _dumpString(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = "".join(f"{inner}{_dumpValue(item, inner)},\n" for item in value)
        return f"[\n{items}{indent}]"
    if isinstance(value, dict):
        # An empty struct "()" would read back as unit, so empty dicts stay maps.
        if value and all(_isFieldName(key) for key in value):
            fields = "".join(f"{inner}{key}: {_dumpValue(item, inner)},\n" for key, item in value.items())
            return f"(\n{fields}{indent})"
        if not value:
            return "{}"
        entries = "".join(f"{inner}{_dumpValue(key, inner)}: {_dumpValue(item, inner)},\n" for key, item in value.items())
        return f"{{\n{entries}{indent}}}"
    raise TypeError(f"Cannot encode {type(value).__name__} as RON")


def dumps(value: Any) -> str:
    """
    Encode plain Python data as RON. Dicts with identifier keys become
    anonymous structs, so loads(dumps(x)) == x for manifest documents.
    """
    return _dumpValue(value, "")
