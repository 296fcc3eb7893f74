"""PhotoRecord: the metadata unit stored inside each photo.

A record holds the people known to be present, a free-text description,
an embedding of that description and the classification tags assigned so
far. Empty values mean "not yet generated".
"""

import json
import math
from dataclasses import dataclass, field

_FIELDS = ("people", "description", "description_embedding", "tags", "embedding_model")


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


@dataclass(eq=False)
class PhotoRecord:
    people: list[str] = field(default_factory=list)
    description: str = ""
    description_embedding: list[float] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    embedding_model: str = ""

    def __post_init__(self):
        self.people = _dedupe(list(self.people))
        self.tags = _dedupe(list(self.tags))
        self.description_embedding = [float(x) for x in self.description_embedding]
        if self.description_embedding and not self.description:
            raise ValueError("description_embedding requires a description")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PhotoRecord):
            return NotImplemented
        return (
            set(self.people) == set(other.people)
            and self.description == other.description
            and self.description_embedding == other.description_embedding
            and self.tags == other.tags
            and self.embedding_model == other.embedding_model
        )

    @property
    def is_empty(self) -> bool:
        return not (self.people or self.description or self.description_embedding or self.tags)

    @property
    def has_embedding(self) -> bool:
        return bool(self.description_embedding)

    # -- field-level changes --

    def has_person(self, name: str) -> bool:
        return name in self.people

    def add_person(self, name: str) -> bool:
        """Add a person. Returns False when already present."""
        if name in self.people:
            return False
        self.people.append(name)
        return True

    def add_tag(self, tag: str) -> bool:
        """Append a tag. Returns False for empty or repeated tags."""
        if not tag or tag in self.tags:
            return False
        self.tags.append(tag)
        return True

    def set_description(self, text: str) -> None:
        """Replace the description. A stale embedding is dropped with it."""
        if text != self.description:
            self.description_embedding = []
            self.embedding_model = ""
        self.description = text

    def set_embedding(self, vector, model: str = "") -> None:
        if not self.description:
            raise ValueError("cannot embed an empty description")
        self.description_embedding = [float(x) for x in vector]
        self.embedding_model = model if self.description_embedding else ""

    def clear(self) -> None:
        self.people = []
        self.description = ""
        self.description_embedding = []
        self.tags = []
        self.embedding_model = ""

    def description_context(self) -> str:
        """JSON context handed to the describer: the people, nothing else."""
        return json.dumps({"people": self.people, "description": "", "tags": []})

    # -- serialisation --

    def to_dict(self) -> dict:
        return {
            "people": list(self.people),
            "description": self.description,
            "description_embedding": list(self.description_embedding),
            "tags": list(self.tags),
            "embedding_model": self.embedding_model,
        }

    @classmethod
    def from_dict(cls, data: object) -> "PhotoRecord":
        """Build a record from decoded JSON. Raises ValueError on foreign shapes."""
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        unknown = set(data) - set(_FIELDS)
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")

        people = data.get("people", [])
        tags = data.get("tags", [])
        description = data.get("description", "")
        embedding = data.get("description_embedding", [])
        model = data.get("embedding_model", "")

        if not isinstance(people, list) or not all(isinstance(p, str) for p in people):
            raise ValueError("people must be a list of strings")
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError("tags must be a list of strings")
        if not isinstance(description, str) or not isinstance(model, str):
            raise ValueError("description and embedding_model must be strings")
        if not isinstance(embedding, list) or not all(
            isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)
            for x in embedding
        ):
            raise ValueError("description_embedding must be a list of finite numbers")

        return cls(
            people=people,
            description=description,
            description_embedding=embedding,
            tags=tags,
            embedding_model=model,
        )

    def to_json(self) -> str:
        # ensure_ascii keeps the blob inside the EXIF ASCII type
        return json.dumps(self.to_dict(), ensure_ascii=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "PhotoRecord":
        return cls.from_dict(json.loads(text))

    def summary(self) -> str:
        emb = f"{len(self.description_embedding)}-d ({self.embedding_model})" if self.has_embedding else "none"
        return (
            f"people={self.people} tags={self.tags} embedding={emb} "
            f"description={self.description!r}"
        )
