"""Merge executor for declarative schemas.

Applies a MergeSchema to an image:

1. Load every declared document. Top-level files are read through the
   filesystem accessor (a missing file is an empty document), nested
   documents are parsed from their parent's value, filesets are loaded
   member by member from a directory listing.
2. Render ``{{placeholder}}`` tokens in each rule's template from the
   answers.
3. Deep-merge template values at the domain key paths. Keys not named by
   a template are left untouched.
4. Serialize touched nested documents into their parents, then write
   touched files back.
"""

from __future__ import annotations

import configparser
import copy
import io
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import jinja2

from device_init.image.filesystem import ImageFileNotFoundError, ImageFilesystem
from device_init.image.paths import ResolvedLocation, resolve_location
from device_init.manifest.schema import FileLocation
from device_init.network.models import FileSpec, MergeSchema, NestedLocation, NetworkAnswers
from device_init.types import FileType

logger = logging.getLogger(__name__)

# Section name no real profile uses, so [DEFAULT] is not special-cased
_INI_DEFAULT_SECTION = "__device_init_default__"

_environment = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


class MergeError(Exception):
    """Raised when a schema cannot be applied."""

    def __init__(self, message: str, code: str = "merge_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class _LoadedFile:
    spec: FileSpec
    content: dict[str, Any]
    touched: bool = False
    touched_members: set[str] = field(default_factory=set)


def _new_ini_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(
        interpolation=None,
        strict=False,
        default_section=_INI_DEFAULT_SECTION,
    )
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


def parse_ini(text: str) -> dict[str, dict[str, str]]:
    """Parse INI text into ``{section: {key: value}}``.

    Key case is preserved.

    Raises:
        MergeError: If the text is not valid INI.
    """
    parser = _new_ini_parser()
    try:
        parser.read_string(text)
    except configparser.Error as e:
        raise MergeError(f"Invalid INI document: {e}", code="invalid_ini") from e
    return {
        section: {key: parser.get(section, key) for key in parser.options(section)}
        for section in parser.sections()
    }


def _ini_value(section: str, key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise MergeError(
            f"INI value {section}.{key} must be a scalar, got {type(value).__name__}",
            code="invalid_ini",
        )
    return str(value)


def serialize_ini(document: Mapping[str, Any]) -> str:
    """Serialize ``{section: {key: value}}`` as ``key=value`` INI text.

    Raises:
        MergeError: If the document is not a mapping of sections.
    """
    parser = _new_ini_parser()
    for section, values in document.items():
        if not isinstance(values, Mapping):
            raise MergeError(
                f"INI section {section!r} must be a mapping, got {type(values).__name__}",
                code="invalid_ini",
            )
        parser.add_section(section)
        for key, value in values.items():
            parser.set(section, key, _ini_value(section, key, value))

    buffer = io.StringIO()
    parser.write(buffer, space_around_delimiters=False)
    return buffer.getvalue()


def parse_document(file_type: FileType, text: str) -> dict[str, Any]:
    """Parse a document of the given type; blank text is an empty document."""
    if not text.strip():
        return {}
    if file_type == FileType.INI:
        return parse_ini(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MergeError(f"Invalid JSON document: {e}", code="invalid_json") from e
    if not isinstance(data, dict):
        raise MergeError(
            f"Expected a JSON object, got {type(data).__name__}", code="invalid_json"
        )
    return data


def serialize_document(file_type: FileType, content: Mapping[str, Any]) -> str:
    """Serialize a document of the given type."""
    if file_type == FileType.INI:
        return serialize_ini(content)
    return json.dumps(content)


def render_template(template: Any, context: Mapping[str, Any]) -> Any:
    """Render ``{{placeholder}}`` tokens in every string of a template.

    Raises:
        MergeError: If a placeholder has no value or a template is invalid.
    """
    if isinstance(template, str):
        if "{{" not in template:
            return template
        try:
            return _environment.from_string(template).render(context)
        except jinja2.TemplateError as e:
            raise MergeError(
                f"Cannot render template {template!r}: {e}", code="template_error"
            ) from e
    if isinstance(template, Mapping):
        return {key: render_template(value, context) for key, value in template.items()}
    if isinstance(template, list):
        return [render_template(value, context) for value in template]
    return template


def _deep_update(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, Mapping):
            _deep_update(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def merge_at(document: dict[str, Any], keys: list[str], value: Any) -> None:
    """Merge a value into a document at a key path.

    Intermediate mappings are created as needed. Mappings are merged
    recursively; any other value replaces what was there.
    """
    node = document
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child

    last = keys[-1]
    existing = node.get(last)
    if isinstance(existing, dict) and isinstance(value, Mapping):
        _deep_update(existing, value)
    else:
        node[last] = copy.deepcopy(value)


def _get_at(document: Mapping[str, Any], keys: list[str]) -> Any:
    node: Any = document
    for key in keys:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _join(directory: str, name: str) -> str:
    return f"{directory.rstrip('/')}/{name}"


class _SchemaMerge:
    """One application of a schema to an image."""

    def __init__(self, schema: MergeSchema, image: str, fs: ImageFilesystem) -> None:
        self.schema = schema
        self.image = image
        self.fs = fs
        self.loaded: dict[str, _LoadedFile] = {}

    def _resolve(self, spec: FileSpec) -> ResolvedLocation:
        if not isinstance(spec.location, FileLocation):
            raise MergeError(
                "Nested files are stored in their parent, not in the image",
                code="invalid_nested_file",
            )
        return resolve_location(self.image, spec.location)

    def _referenced_members(self, file_id: str) -> set[str]:
        members = set()
        for rule in self.schema.mapper:
            for entry in rule.domain:
                if entry[0] == file_id:
                    members.add(entry[1])
        for spec in self.schema.files.values():
            if isinstance(spec.location, NestedLocation) and spec.location.parent == file_id:
                members.add(spec.location.key_path[0])
        return members

    def _read_text(self, location: ResolvedLocation) -> str:
        try:
            with self.fs.interact(location.image, location.partition) as handle:
                return handle.read_file(location.path)
        except ImageFileNotFoundError:
            logger.debug("%s not found in %s, starting empty", location.path, location.image)
            return ""

    def _load_fileset(self, file_id: str, spec: FileSpec) -> dict[str, Any]:
        location = self._resolve(spec)
        content: dict[str, Any] = {}
        with self.fs.interact(location.image, location.partition) as handle:
            existing = set(handle.readdir(location.path))
            for member in sorted(self._referenced_members(file_id)):
                if member in existing:
                    text = handle.read_file(_join(location.path, member))
                    content[member] = parse_document(spec.type, text)
                else:
                    content[member] = {}
        return content

    def load(self, file_id: str) -> _LoadedFile:
        if file_id in self.loaded:
            return self.loaded[file_id]

        spec = self.schema.files[file_id]
        if isinstance(spec.location, NestedLocation):
            parent = self.load(spec.location.parent)
            raw = _get_at(parent.content, spec.location.key_path)
            if raw is None:
                raw = ""
            if not isinstance(raw, str):
                raise MergeError(
                    f"Nested file {file_id!r} is not stored as text in "
                    f"{spec.location.parent!r}",
                    code="invalid_nested_file",
                )
            content = parse_document(spec.type, raw)
        elif spec.fileset:
            content = self._load_fileset(file_id, spec)
        else:
            content = parse_document(spec.type, self._read_text(self._resolve(spec)))

        loaded = _LoadedFile(spec=spec, content=content)
        self.loaded[file_id] = loaded
        return loaded

    def _mark(self, file_id: str, keys: list[str]) -> None:
        loaded = self.loaded[file_id]
        loaded.touched = True
        if loaded.spec.fileset:
            loaded.touched_members.add(keys[0])

    def merge(self, answers: Mapping[str, Any]) -> None:
        for file_id in self.schema.files:
            self.load(file_id)

        for rule in self.schema.mapper:
            rendered = render_template(rule.template, answers)
            for entry in rule.domain:
                file_id, keys = entry[0], entry[1:]
                merge_at(self.loaded[file_id].content, keys, rendered[keys[-1]])
                self._mark(file_id, keys)

    def _depth(self, file_id: str) -> int:
        depth = 0
        spec = self.schema.files[file_id]
        while isinstance(spec.location, NestedLocation):
            depth += 1
            spec = self.schema.files[spec.location.parent]
        return depth

    def write(self) -> None:
        nested = [
            file_id
            for file_id, loaded in self.loaded.items()
            if isinstance(loaded.spec.location, NestedLocation)
        ]
        for file_id in sorted(nested, key=self._depth, reverse=True):
            loaded = self.loaded[file_id]
            parent = loaded.spec.location
            if not loaded.touched or not isinstance(parent, NestedLocation):
                continue
            parent_id = parent.parent
            key_path = parent.key_path
            text = serialize_document(loaded.spec.type, loaded.content)
            merge_at(self.loaded[parent_id].content, key_path, text)
            self._mark(parent_id, key_path)

        for file_id, loaded in self.loaded.items():
            if not loaded.touched or isinstance(loaded.spec.location, NestedLocation):
                continue
            location = self._resolve(loaded.spec)
            with self.fs.interact(location.image, location.partition) as handle:
                if loaded.spec.fileset:
                    for member in sorted(loaded.touched_members):
                        path = _join(location.path, member)
                        handle.write_file(
                            path, serialize_document(loaded.spec.type, loaded.content[member])
                        )
                        logger.info("Wrote %s to %s", path, location.image)
                else:
                    handle.write_file(
                        location.path, serialize_document(loaded.spec.type, loaded.content)
                    )
                    logger.info("Wrote %s to %s", location.path, location.image)


def apply_schema(
    schema: MergeSchema,
    answers: NetworkAnswers | Mapping[str, Any],
    image: str,
    *,
    fs: ImageFilesystem,
) -> None:
    """Apply a merge schema to an image.

    Args:
        schema: Merge schema to apply.
        answers: Values for template placeholders.
        image: Path of the target image.
        fs: Filesystem accessor.

    Raises:
        MergeError: A template or document could not be processed.
        ImageFilesystemError: Reading or writing the image failed.
    """
    context = answers.template_context() if isinstance(answers, NetworkAnswers) else answers
    merge = _SchemaMerge(schema, image, fs)
    merge.merge(context)
    merge.write()


__all__ = [
    "MergeError",
    "apply_schema",
    "merge_at",
    "parse_document",
    "parse_ini",
    "render_template",
    "serialize_document",
    "serialize_ini",
]
