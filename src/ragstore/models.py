"""Schema models shared by the writer, the scanner and the store facade."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence
from uuid import uuid4

import mmh3

from ragstore.exceptions import ValidationError

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

ALLOWED_HASH_KEYS = ("content", "content_type", "score", "meta", "embedding")
LABEL_ORIGINS = ("gold-label", "user-feedback")


class ContentType(str, Enum):
    TEXT = "text"
    TABLE = "table"
    IMAGE = "image"


class AnswerType(str, Enum):
    EXTRACTIVE = "extractive"
    GENERATIVE = "generative"


def now_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def _canonical(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


def _coerce_enum(enum_cls: type[Enum], value: Any, name: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {name} '{value}', choose one of: {allowed}") from exc


def _validate_hash_keys(keys: Iterable[str]) -> tuple[str, ...]:
    validated: list[str] = []
    for key in keys:
        is_meta_key = isinstance(key, str) and key.startswith("meta.") and len(key) > len("meta.")
        if key not in ALLOWED_HASH_KEYS and not is_meta_key:
            allowed = ", ".join(ALLOWED_HASH_KEYS)
            raise ValidationError(
                f"Hash key '{key}' cannot be used. Must start with 'meta.' or be one of: {allowed}"
            )
        validated.append(key)
    return tuple(validated)


@dataclass(frozen=True)
class Document:
    """Content-bearing unit stored in the document index.

    When ``id`` is omitted it is derived from the fields named in
    ``id_hash_keys`` (in order) with a streamed 128-bit MurmurHash3, so equal
    content yields equal ids and acts as the deduplication signal.
    """

    content: str
    content_type: ContentType = ContentType.TEXT
    id: str | None = None
    score: float | None = None
    meta: Mapping[str, Any] = field(default_factory=dict)
    embedding: tuple[float, ...] | None = None
    id_hash_keys: tuple[str, ...] = ("content",)

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            raise ValidationError(f"Document content must be a string, got {type(self.content).__name__}")
        object.__setattr__(self, "content_type", _coerce_enum(ContentType, self.content_type, "content_type"))
        object.__setattr__(self, "id_hash_keys", _validate_hash_keys(self.id_hash_keys or ("content",)) or ("content",))
        object.__setattr__(self, "meta", dict(self.meta or {}))
        if self.embedding is not None:
            object.__setattr__(self, "embedding", tuple(float(value) for value in self.embedding))
        if self.id is None:
            object.__setattr__(self, "id", self._compute_id())
        else:
            object.__setattr__(self, "id", str(self.id))

    def _compute_id(self) -> str:
        hasher = mmh3.mmh3_x64_128()
        for key in self.id_hash_keys:
            if key.startswith("meta."):
                meta_key = key[len("meta."):]
                if meta_key not in self.meta:
                    continue
                value = self.meta[meta_key]
            else:
                value = getattr(self, key)
            hasher.update(_canonical(value).encode("utf-8"))
        return hasher.digest().hex()

    def with_score(self, score: float | None) -> "Document":
        return replace(self, score=score)

    def __hash__(self) -> int:
        # meta is a dict; equal documents share an id
        return hash(self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "content_type": self.content_type.value,
            "score": self.score,
            "meta": dict(self.meta),
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "id_hash_keys": list(self.id_hash_keys),
        }


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Answer:
    """Answer attached to a label."""

    answer: str
    type: AnswerType = AnswerType.EXTRACTIVE
    score: float | None = None
    context: str | None = None
    offsets_in_document: tuple[Span, ...] | None = None
    offsets_in_context: tuple[Span, ...] | None = None
    document_ids: frozenset[str] | None = None
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.answer, str):
            raise ValidationError("Answer text must be a string")
        object.__setattr__(self, "type", _coerce_enum(AnswerType, self.type, "answer type"))
        object.__setattr__(self, "meta", dict(self.meta or {}))
        if self.document_ids is not None:
            object.__setattr__(self, "document_ids", frozenset(str(i) for i in self.document_ids))
        for name in ("offsets_in_document", "offsets_in_context"):
            spans = getattr(self, name)
            if spans is not None:
                object.__setattr__(self, name, tuple(_coerce_span(span) for span in spans))

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "type": self.type.value,
            "score": self.score,
            "context": self.context,
            "offsets_in_document": [s.to_dict() for s in self.offsets_in_document]
            if self.offsets_in_document is not None
            else None,
            "offsets_in_context": [s.to_dict() for s in self.offsets_in_context]
            if self.offsets_in_context is not None
            else None,
            "document_ids": sorted(self.document_ids) if self.document_ids is not None else None,
            "meta": dict(self.meta),
        }


@dataclass(frozen=True)
class Label:
    """Feedback judgement about a document (and optionally an answer) for a query."""

    query: str
    document: Document
    is_correct_answer: bool
    is_correct_document: bool
    origin: str
    answer: Answer | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    pipeline_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    meta: Mapping[str, Any] = field(default_factory=dict)
    filters: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.document, Document):
            raise ValidationError("Label document must be a Document instance")
        if self.origin not in LABEL_ORIGINS:
            raise ValidationError(f"Invalid label origin '{self.origin}', choose one of: {', '.join(LABEL_ORIGINS)}")
        object.__setattr__(self, "id", str(self.id) if self.id else str(uuid4()))
        object.__setattr__(self, "meta", dict(self.meta or {}))

    @property
    def no_answer(self) -> bool:
        return self.answer is None or not self.answer.answer

    def __hash__(self) -> int:
        return hash(self.id)

    def with_timestamps(self, now: str | None = None) -> "Label":
        """Fill missing timestamps; an existing ``created_at`` is never replaced."""

        created_at = self.created_at or now or now_timestamp()
        return replace(self, created_at=created_at, updated_at=self.updated_at or created_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "document": self.document.to_dict(),
            "document_id": self.document.id,
            "is_correct_answer": self.is_correct_answer,
            "is_correct_document": self.is_correct_document,
            "origin": self.origin,
            "answer": self.answer.to_dict() if self.answer is not None else None,
            "no_answer": self.no_answer,
            "pipeline_id": self.pipeline_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "meta": dict(self.meta),
            "filters": dict(self.filters) if self.filters is not None else None,
        }


def _coerce_span(value: Any) -> Span:
    if isinstance(value, Span):
        return value
    if isinstance(value, Mapping) and "start" in value and "end" in value:
        return Span(start=int(value["start"]), end=int(value["end"]))
    if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
        return Span(start=int(value[0]), end=int(value[1]))
    raise ValidationError(f"Invalid offset span: {value!r}")


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _require(data: Mapping[str, Any], *keys: str, kind: str) -> Any:
    value = _pick(data, *keys)
    if value is None:
        raise ValidationError(f"Missing required field '{keys[0]}' for {kind}")
    return value


def document_from_dict(data: Mapping[str, Any] | Document) -> Document:
    """Build a Document from a plain mapping; camelCase keys are accepted."""

    if isinstance(data, Document):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Cannot build a Document from {type(data).__name__}")
    embedding = _pick(data, "embedding")
    try:
        return Document(
            content=_require(data, "content", kind="document"),
            content_type=_pick(data, "content_type", "contentType", default=ContentType.TEXT),
            id=_pick(data, "id"),
            score=_pick(data, "score"),
            meta=_pick(data, "meta", default={}),
            embedding=tuple(embedding) if embedding is not None else None,
            id_hash_keys=tuple(_pick(data, "id_hash_keys", "idHashKeys", default=("content",))),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ValidationError):
            raise
        raise ValidationError(f"Malformed document payload: {exc}") from exc


def answer_from_dict(data: Mapping[str, Any] | Answer) -> Answer:
    if isinstance(data, Answer):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Cannot build an Answer from {type(data).__name__}")
    try:
        return Answer(
            answer=_require(data, "answer", kind="answer"),
            type=_pick(data, "type", default=AnswerType.EXTRACTIVE),
            score=_pick(data, "score"),
            context=_pick(data, "context"),
            offsets_in_document=_pick(data, "offsets_in_document", "offsetsInDocument"),
            offsets_in_context=_pick(data, "offsets_in_context", "offsetsInContext"),
            document_ids=_pick(data, "document_ids", "documentIds"),
            meta=_pick(data, "meta", default={}),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ValidationError):
            raise
        raise ValidationError(f"Malformed answer payload: {exc}") from exc


def label_from_dict(data: Mapping[str, Any] | Label) -> Label:
    """Build a Label (with its nested Document and Answer) from a plain mapping."""

    if isinstance(data, Label):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Cannot build a Label from {type(data).__name__}")
    answer = _pick(data, "answer")
    flags = {}
    for name, camel in (("is_correct_answer", "isCorrectAnswer"), ("is_correct_document", "isCorrectDocument")):
        value = _require(data, name, camel, kind="label")
        if not isinstance(value, bool):
            raise ValidationError(f"Label field '{name}' must be a boolean")
        flags[name] = value
    try:
        return Label(
            query=_require(data, "query", kind="label"),
            document=document_from_dict(_require(data, "document", kind="label")),
            origin=_require(data, "origin", kind="label"),
            answer=answer_from_dict(answer) if answer is not None else None,
            id=_pick(data, "id", default=""),
            pipeline_id=_pick(data, "pipeline_id", "pipelineId"),
            created_at=_pick(data, "created_at", "createdAt"),
            updated_at=_pick(data, "updated_at", "updatedAt"),
            meta=_pick(data, "meta", default={}),
            filters=_pick(data, "filters"),
            **flags,
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ValidationError):
            raise
        raise ValidationError(f"Malformed label payload: {exc}") from exc


__all__ = [
    "ALLOWED_HASH_KEYS",
    "Answer",
    "AnswerType",
    "ContentType",
    "Document",
    "LABEL_ORIGINS",
    "Label",
    "Span",
    "TIMESTAMP_FORMAT",
    "answer_from_dict",
    "document_from_dict",
    "label_from_dict",
    "now_timestamp",
]
