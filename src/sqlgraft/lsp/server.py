"""Schema language server: diagnostics, completion, hover via pygls."""

from __future__ import annotations

import re

from lsprotocol import types
from pygls.lsp.server import LanguageServer

from sqlgraft.errors import SqlGraftError
from sqlgraft.metadata import TAG_COLUMN, TAG_MANY_TO_MANY, TAG_ONE_TO_MANY, parse_tag
from sqlgraft.parsing import SchemaParser

# ---------------------------------------------------------------------------
# Static data
# ---------------------------------------------------------------------------

TAG_DOCS: dict[str, str] = {
    TAG_COLUMN: 'Column name of the field (required), e.g. `json:"email"`',
    TAG_ONE_TO_MANY: (
        "Children of this field get a foreign-key column with this name holding "
        'the parent identifier, e.g. `one-to-many:"refered_by"`'
    ),
    TAG_MANY_TO_MANY: (
        'Two-sided relationship tag "<role>-<otherRole>"; otherRole names the '
        'reciprocal field\'s column, e.g. `many-to-many:"boss-workers"`'
    ),
}

_POSITION_RE = re.compile(r"position (\d+)")
_LINE_RE = re.compile(r"line (\d+)")

_ENTITY_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\{", re.MULTILINE)

# ---------------------------------------------------------------------------
# Helpers (module-level so they are easy to unit-test)
# ---------------------------------------------------------------------------


def lexpos_to_position(source: str, lexpos: int) -> types.Position:
    """Convert a character offset into an LSP ``Position(line, character)``."""
    line = source.count("\n", 0, lexpos)
    last_nl = source.rfind("\n", 0, lexpos)
    character = lexpos if last_nl == -1 else lexpos - last_nl - 1
    return types.Position(line=line, character=character)


def _extract_position_from_error(message: str) -> int | None:
    """Return the offset embedded in a SyntaxError message, or None."""
    m = _POSITION_RE.search(message)
    return int(m.group(1)) if m else None


def _extract_line_from_error(message: str) -> int | None:
    """Return the zero-based line embedded in an error message, or None."""
    m = _LINE_RE.search(message)
    return int(m.group(1)) - 1 if m else None


def _find_entities(source: str) -> list[str]:
    """Return entity names declared in *source*."""
    return [m.group(1) for m in _ENTITY_RE.finditer(source)]


def _in_tag(prefix: str) -> bool:
    """True when *prefix* ends inside an open back-quoted tag."""
    return prefix.count("`") % 2 == 1


def _tag_key_at_position(line_text: str, character: int) -> str:
    """Return the tag key (``json``, ``one-to-many`` ...) surrounding *character*."""
    if character < 0 or character >= len(line_text):
        return ""

    def is_key_char(ch: str) -> bool:
        return ch.isalnum() or ch in "_-"

    if not is_key_char(line_text[character]):
        return ""
    left = character
    while left > 0 and is_key_char(line_text[left - 1]):
        left -= 1
    right = character
    while right < len(line_text) and is_key_char(line_text[right]):
        right += 1
    return line_text[left:right]


def _diagnose(parser: SchemaParser, source: str) -> list[types.Diagnostic]:
    """Parse *source* and return its diagnostics."""
    diagnostics: list[types.Diagnostic] = []
    try:
        specs = parser.parse_specs(source)
        parser.resolve(specs)
    except (SyntaxError, SqlGraftError) as exc:
        msg = str(exc)
        pos_int = _extract_position_from_error(msg) if isinstance(exc, SyntaxError) else None
        line_no = _extract_line_from_error(msg)
        if pos_int is not None:
            start = lexpos_to_position(source, pos_int)
        elif line_no is not None:
            start = types.Position(line=line_no, character=0)
        else:
            lines = source.split("\n")
            start = types.Position(line=max(len(lines) - 1, 0), character=0)
        end = types.Position(line=start.line, character=start.character + 1)
        diagnostics.append(
            types.Diagnostic(
                range=types.Range(start=start, end=end),
                severity=types.DiagnosticSeverity.Error,
                source="sqlgraft",
                message=msg,
            )
        )
        return diagnostics

    for spec in specs:
        for fspec in spec.fields:
            tags = parse_tag(fspec.tag) if fspec.tag else {}
            if tags.get(TAG_COLUMN):
                continue
            start = lexpos_to_position(source, fspec.lexpos)
            end = types.Position(line=start.line, character=start.character + len(fspec.name))
            diagnostics.append(
                types.Diagnostic(
                    range=types.Range(start=start, end=end),
                    severity=types.DiagnosticSeverity.Warning,
                    source="sqlgraft",
                    message=(
                        f"Field '{spec.name}.{fspec.name}' has no {TAG_COLUMN} tag; "
                        "persisting it will fail"
                    ),
                )
            )
    return diagnostics


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

server = LanguageServer("sqlgraft-schema-server", "0.1.0")
_parser = SchemaParser()


@server.feature(types.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: types.DidOpenTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


@server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: types.DidChangeTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


def _validate_document(uri: str) -> None:
    doc = server.workspace.get_text_document(uri)
    server.text_document_publish_diagnostics(
        types.PublishDiagnosticsParams(uri=uri, diagnostics=_diagnose(_parser, doc.source))
    )


@server.feature(
    types.TEXT_DOCUMENT_COMPLETION,
    types.CompletionOptions(trigger_characters=[":", "`", " "]),
)
def completions(params: types.CompletionParams) -> types.CompletionList:
    doc = server.workspace.get_text_document(params.text_document.uri)
    line_text = doc.lines[params.position.line] if params.position.line < len(doc.lines) else ""
    prefix = line_text[: params.position.character]

    items: list[types.CompletionItem] = []

    if _in_tag(prefix):
        for key, desc in TAG_DOCS.items():
            items.append(
                types.CompletionItem(
                    label=key,
                    kind=types.CompletionItemKind.Property,
                    detail=desc,
                    insert_text=f'{key}:""',
                )
            )
    elif prefix.rstrip().endswith(":"):
        for name in _find_entities(doc.source):
            items.append(
                types.CompletionItem(
                    label=f"{name}[]",
                    kind=types.CompletionItemKind.Class,
                    detail="Relation to a declared entity",
                )
            )

    return types.CompletionList(is_incomplete=False, items=items)


@server.feature(types.TEXT_DOCUMENT_HOVER)
def hover(params: types.HoverParams) -> types.Hover | None:
    doc = server.workspace.get_text_document(params.text_document.uri)
    if params.position.line >= len(doc.lines):
        return None
    line_text = doc.lines[params.position.line]
    key = _tag_key_at_position(line_text, params.position.character)
    if key not in TAG_DOCS:
        return None
    return types.Hover(
        contents=types.MarkupContent(
            kind=types.MarkupKind.Markdown,
            value=f"**{key}**: {TAG_DOCS[key]}",
        )
    )


def main() -> None:
    server.start_io()


if __name__ == "__main__":
    main()
