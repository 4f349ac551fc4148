"""Per-file merge strategies.

A ``MergedFile`` accumulates every contribution made to one target path, in
resolution order.  Text strategies work on raw source; structured strategies
parse JSON/YAML source and merge by key.  Nothing is rendered here:
placeholders stay in place until the generator renders the final content
once.  Each piece remembers whether it came from a template, so content
copied from plain files is never passed through Jinja2.

Two strategies target specific file kinds:

- ``merge-entry`` splices import lines and app setup lines into an
  application entry point (``src/main.js``) owned by another module.
- ``merge-env`` concatenates ``.env`` style files under a per-module header
  and comments out keys an earlier module already set.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

import yaml

from stackweave.modules.models import MergeStrategy

from .errors import MergeConflictError, StructuredParseError
from .templates import TemplateRenderer, Verbatim, verbatim

KeyPath = tuple[str, ...]
Piece = tuple[str, bool]

TEXT_BOUNDARY = "\n\n"

IMPORT_LINE = re.compile(r"^\s*import\b")
MOUNT_LINE = re.compile(r"^\s*(\w+)\.mount\(")
ENV_KEY = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=")


class MergedFile:
    """The accumulated state of one target path."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.data: Any = None
        self.contributors: list[str] = []
        self._pieces: list[Piece] | None = None
        self._entries: list[Piece] = []
        self._owners: dict[KeyPath, str] = {}
        self._handlers: dict[MergeStrategy, Callable[[str, str, bool], None]] = {
            MergeStrategy.OVERWRITE: self._overwrite,
            MergeStrategy.APPEND_TEXT: self._append_text,
            MergeStrategy.APPEND_UNIQUE: self._append_unique,
            MergeStrategy.MERGE_STRUCTURED: self._merge_structured,
            MergeStrategy.MERGE_FAIL_ON_CONFLICT: self._merge_strict,
            MergeStrategy.MERGE_ENTRY: self._merge_entry,
            MergeStrategy.MERGE_ENV: self._merge_env,
        }

    @property
    def text(self) -> str | None:
        """The accumulated text source, or ``None`` if there is none."""
        if self._pieces is None:
            return None
        return "".join(chunk for chunk, _ in self._pieces)

    @property
    def is_structured(self) -> bool:
        return self.data is not None

    @property
    def has_content(self) -> bool:
        """False when only entry snippets arrived and no module owns the base."""
        return self.data is not None or self._pieces is not None

    def apply(
        self,
        content: str,
        strategy: MergeStrategy,
        module: str,
        *,
        template: bool = False,
    ) -> None:
        """Combine *content* from *module* with what is already accumulated.

        Args:
            content: Raw contributed source.
            strategy: How to combine it with earlier contributions.
            module: Contributing module name, used in conflict messages.
            template: Whether *content* is Jinja2 source.
        """
        self._handlers[strategy](content, module, template)
        self.contributors.append(module)

    def apply_data(self, data: dict[str, Any], module: str, *, strict: bool) -> None:
        """Merge an already-parsed mapping, e.g. a manifest fragment."""
        base = self._structured_base()
        self.data = self._merge(base, verbatim(data), module, strict=strict, prefix=())
        self._pieces = None
        if module not in self.contributors[-1:]:
            self.contributors.append(module)

    def render(self, renderer: TemplateRenderer, context: dict[str, Any], *, indent: int = 2) -> str:
        """Render the accumulated content with the final context."""
        if self.is_structured:
            rendered = renderer.render_data(self.data, context, path=self.path)
            text = dump_structured(self.path, rendered, indent=indent)
        else:
            text = "".join(
                renderer.render_string(chunk, context, path=self.path) if template else chunk
                for chunk, template in self._pieces or ()
            )
        for snippet, template in self._entries:
            if template:
                snippet = renderer.render_string(snippet, context, path=self.path)
            text = splice_entry(text, snippet)
        return text

    # -- Text strategies ---------------------------------------------------

    def _overwrite(self, content: str, module: str, template: bool) -> None:
        self._pieces = [(content, template)]
        self.data = None
        self._owners.clear()

    def _append_text(self, content: str, module: str, template: bool) -> None:
        if not self._current_text():
            self._overwrite(content, module, template)
            return
        self._append_piece(content, template)

    def _append_unique(self, content: str, module: str, template: bool) -> None:
        existing = self._current_text()
        if not existing:
            self._overwrite(content, module, template)
            return
        seen = {line.strip() for line in existing.splitlines() if line.strip()}
        fresh: list[str] = []
        for line in content.splitlines():
            key = line.strip()
            if key and key not in seen:
                seen.add(key)
                fresh.append(line)
        if fresh:
            self._append_piece("\n".join(fresh) + "\n", template)

    def _merge_env(self, content: str, module: str, template: bool) -> None:
        existing = self._current_text()
        seen = {m.group(1) for m in map(ENV_KEY.match, existing.splitlines()) if m}
        lines = [f"# {module.upper()} Configuration"]
        for line in content.splitlines():
            match = ENV_KEY.match(line)
            if match is None:
                lines.append(line)
            elif match.group(1) in seen:
                lines.append(f"# {line}  # duplicate from {module}, commented out")
            else:
                seen.add(match.group(1))
                lines.append(line)
        block = "\n".join(lines).rstrip("\n") + "\n"
        if not existing:
            self._overwrite(block, module, template)
        else:
            self._append_piece(block, template)

    def _merge_entry(self, content: str, module: str, template: bool) -> None:
        self._entries.append((content, template))

    def _append_piece(self, content: str, template: bool) -> None:
        """Join *content* to the existing text with one blank line between."""
        pieces = self._text_pieces()
        while pieces and not pieces[-1][0].rstrip("\n"):
            pieces.pop()
        if pieces:
            chunk, flag = pieces[-1]
            pieces[-1] = (chunk.rstrip("\n"), flag)
            pieces.append((TEXT_BOUNDARY, False))
        pieces.append((content, template))
        self._pieces = pieces
        self.data = None

    def _text_pieces(self) -> list[Piece]:
        if self.data is not None:
            return [(dump_structured(self.path, self.data), not _has_verbatim(self.data))]
        return list(self._pieces or [])

    # -- Structured strategies ---------------------------------------------

    def _merge_structured(self, content: str, module: str, template: bool) -> None:
        self._merge_parsed(content, module, template, strict=False)

    def _merge_strict(self, content: str, module: str, template: bool) -> None:
        self._merge_parsed(content, module, template, strict=True)

    def _merge_parsed(self, content: str, module: str, template: bool, *, strict: bool) -> None:
        incoming = parse_structured(self.path, content, module)
        if not template:
            incoming = verbatim(incoming)
        base = self._structured_base()
        self.data = self._merge(base, incoming, module, strict=strict, prefix=())
        self._pieces = None

    def _structured_base(self) -> Any:
        if self.data is not None:
            return self.data
        if self._pieces is None:
            return {}
        owner = self.contributors[-1] if self.contributors else "<unknown>"
        parsed = parse_structured(self.path, self.text or "", owner)
        if not all(template for _, template in self._pieces):
            parsed = verbatim(parsed)
        self._claim(parsed, owner, ())
        return parsed

    def _merge(
        self,
        base: Any,
        incoming: Any,
        module: str,
        *,
        strict: bool,
        prefix: KeyPath,
    ) -> Any:
        if isinstance(base, list) and isinstance(incoming, list):
            self._owners[prefix] = module
            return union_lists(base, incoming)
        if not isinstance(base, dict) or not isinstance(incoming, dict):
            if strict and base != incoming and base not in ({}, None):
                self._conflict(prefix, module)
            self._claim(incoming, module, prefix)
            return incoming

        merged = dict(base)
        for key, value in incoming.items():
            key_path = prefix + (str(key),)
            if key not in merged:
                merged[key] = value
                self._claim(value, module, key_path)
                continue
            current = merged[key]
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = self._merge(current, value, module, strict=strict, prefix=key_path)
            elif isinstance(current, list) and isinstance(value, list):
                merged[key] = union_lists(current, value)
                self._owners[key_path] = module
            elif current == value:
                continue
            elif strict:
                self._conflict(key_path, module)
            else:
                merged[key] = value
                self._drop_owners(key_path)
                self._claim(value, module, key_path)
        return merged

    def _claim(self, value: Any, module: str, key_path: KeyPath) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                self._claim(child, module, key_path + (str(key),))
        else:
            self._owners[key_path] = module

    def _drop_owners(self, key_path: KeyPath) -> None:
        for owned in [k for k in self._owners if k[: len(key_path)] == key_path]:
            del self._owners[owned]

    def _conflict(self, key_path: KeyPath, module: str) -> None:
        owner = self._owners.get(key_path)
        if owner is None:
            # The existing value is a mapping: any module owning a key below it.
            owner = next(
                (m for k, m in self._owners.items() if k[: len(key_path)] == key_path),
                None,
            )
        raise MergeConflictError(
            self.path,
            ".".join(key_path) or "<root>",
            owner or "<unknown>",
            module,
        )

    def _current_text(self) -> str:
        if self.data is not None:
            return dump_structured(self.path, self.data)
        return self.text or ""


# ---------------------------------------------------------------------------
# Entry point splicing
# ---------------------------------------------------------------------------

def splice_entry(base: str, snippet: str) -> str:
    """Insert the lines of *snippet* into the entry point source *base*.

    Lines already present (compared stripped) are skipped.  Import lines go
    after the last import statement of *base*.  Other lines go after the last
    ``<app>.`` call that precedes ``<app>.mount(...)``, or right before the
    mount call, or at the end when there is no mount call.
    """
    lines = base.split("\n")
    present = {line.strip() for line in lines if line.strip()}
    imports: list[str] = []
    body: list[str] = []
    for line in snippet.splitlines():
        key = line.strip()
        if not key or key in present:
            continue
        present.add(key)
        (imports if IMPORT_LINE.match(line) else body).append(line)

    if imports:
        at = _after_imports(lines)
        lines[at:at] = imports
    if body:
        at = _body_position(lines)
        lines[at:at] = body
    return "\n".join(lines)


def _after_imports(lines: list[str]) -> int:
    end = 0
    index = 0
    while index < len(lines):
        if IMPORT_LINE.match(lines[index]):
            # import { a,
            #   b } from 'x'
            if "{" in lines[index] and "}" not in lines[index]:
                while index + 1 < len(lines) and "}" not in lines[index]:
                    index += 1
            end = index + 1
        index += 1
    return end


def _body_position(lines: list[str]) -> int:
    mount = next((i for i, line in enumerate(lines) if MOUNT_LINE.match(line)), None)
    if mount is None:
        end = len(lines)
        while end > 0 and not lines[end - 1].strip():
            end -= 1
        return end
    receiver = MOUNT_LINE.match(lines[mount]).group(1) + "."
    last_call = None
    for index in range(mount):
        if lines[index].lstrip().startswith(receiver):
            last_call = index
    return mount if last_call is None else last_call + 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def union_lists(current: list[Any], incoming: list[Any]) -> list[Any]:
    """Order-preserving union.

    Mappings carrying a ``name`` key are matched by that name and the
    incoming entry replaces the existing one in place; every other item is
    appended unless an equal item is already present.
    """
    result = list(current)
    named = {
        item["name"]: i
        for i, item in enumerate(result)
        if isinstance(item, dict) and "name" in item
    }
    for item in incoming:
        if isinstance(item, dict) and "name" in item and item["name"] in named:
            result[named[item["name"]]] = item
        elif item not in result:
            if isinstance(item, dict) and "name" in item:
                named[item["name"]] = len(result)
            result.append(item)
    return result


def structured_format(path: str) -> str:
    return "json" if path.endswith(".json") else "yaml"


def parse_structured(path: str, content: str, module: str) -> Any:
    """Parse JSON or YAML source according to the path suffix."""
    if not content.strip():
        return {}
    try:
        if structured_format(path) == "json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise StructuredParseError(path, module, str(exc)) from exc
    return {} if data is None else data


class _Dumper(yaml.SafeDumper):
    pass


_Dumper.add_representer(Verbatim, yaml.representer.SafeRepresenter.represent_str)


def dump_structured(path: str, data: Any, *, indent: int = 2) -> str:
    if structured_format(path) == "json":
        return json.dumps(data, indent=indent, ensure_ascii=False) + "\n"
    return yaml.dump(
        data,
        Dumper=_Dumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def _has_verbatim(data: Any) -> bool:
    if isinstance(data, dict):
        return any(_has_verbatim(k) or _has_verbatim(v) for k, v in data.items())
    if isinstance(data, list):
        return any(_has_verbatim(item) for item in data)
    return isinstance(data, Verbatim)
