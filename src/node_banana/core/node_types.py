"""
Node Type System - The closed set of node kinds and their data payloads.

Each node kind has a payload dataclass that describes:
- Which handles it exposes as a source (outputs) and as a target (inputs)
- Which of its fields is the image or text it produces
- Which inputs it needs before it can execute

The engine never looks up output fields by node-type string; it asks the
payload through ``produces_image()`` / ``produces_text()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar


class NodeKind(Enum):
    """Node types understood by the engine."""
    IMAGE_INPUT = "imageInput"
    PROMPT = "prompt"
    ANNOTATION = "annotation"
    NANO_BANANA = "nanoBanana"      # Image generation
    LLM_GENERATE = "llmGenerate"    # Text generation
    OUTPUT = "output"


class HandleType(Enum):
    """Typed connection points on a node."""
    IMAGE = "image"
    TEXT = "text"
    REFERENCE = "reference"  # Advisory link, carries no data

    @property
    def is_data(self) -> bool:
        return self is not HandleType.REFERENCE


class NodeStatus(Enum):
    """Execution status of an executable node."""
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class InputRequirements:
    """Inputs a node must receive before it is ready to execute."""
    needs_text: bool = False
    needs_image: bool = False


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass
class NodeData:
    """
    Base payload for every node kind.

    Unknown keys found when loading a workflow are kept in ``extra`` so a
    save/load cycle never drops fields written by other tools.
    """
    kind: ClassVar[NodeKind]
    source_handles: ClassVar[frozenset[HandleType]] = frozenset()
    target_handles: ClassVar[frozenset[HandleType]] = frozenset()
    executable: ClassVar[bool] = False

    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    def produces_image(self) -> str | None:
        """The image this node offers on its ``image`` source handle."""
        return None

    def produces_text(self) -> str | None:
        """The text this node offers on its ``text`` source handle."""
        return None

    def output_for(self, handle: HandleType) -> str | None:
        if handle is HandleType.IMAGE:
            return self.produces_image()
        if handle is HandleType.TEXT:
            return self.produces_text()
        return None

    def has_output(self) -> bool:
        return any(self.output_for(h) is not None for h in self.source_handles)

    def requirements(self) -> InputRequirements:
        return InputRequirements()

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            data[_camel(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeData:
        known = {_camel(f.name): f.name for f in fields(cls) if f.name != "extra"}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                kwargs[known[key]] = cls._decode_field(known[key], value)
            else:
                extra[key] = value
        return cls(extra=extra, **kwargs)

    @classmethod
    def _decode_field(cls, name: str, value: Any) -> Any:
        return value


@dataclass
class ExecutableData(NodeData):
    """Payload for node kinds that run during a workflow execution."""
    executable: ClassVar[bool] = True

    status: NodeStatus = NodeStatus.IDLE
    error: str | None = None

    @classmethod
    def _decode_field(cls, name: str, value: Any) -> Any:
        if name == "status":
            status = NodeStatus(value)
            # In-flight runs are not restored
            return NodeStatus.IDLE if status is NodeStatus.LOADING else status
        return value


@dataclass
class ImageInputData(NodeData):
    kind: ClassVar[NodeKind] = NodeKind.IMAGE_INPUT
    source_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.IMAGE})

    image: str | None = None
    filename: str | None = None
    dimensions: dict[str, int] | None = None

    def produces_image(self) -> str | None:
        return self.image


@dataclass
class PromptData(NodeData):
    kind: ClassVar[NodeKind] = NodeKind.PROMPT
    source_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.TEXT})

    prompt: str = ""

    def produces_text(self) -> str | None:
        return self.prompt if self.prompt and self.prompt.strip() else None


@dataclass
class AnnotationData(ExecutableData):
    kind: ClassVar[NodeKind] = NodeKind.ANNOTATION
    source_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.IMAGE})
    target_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.IMAGE})

    source_image: str | None = None
    annotations: list[dict[str, Any]] = field(default_factory=list)
    output_image: str | None = None

    def produces_image(self) -> str | None:
        return self.output_image

    def requirements(self) -> InputRequirements:
        return InputRequirements(needs_image=True)


@dataclass
class NanoBananaData(ExecutableData):
    kind: ClassVar[NodeKind] = NodeKind.NANO_BANANA
    source_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.IMAGE})
    target_handles: ClassVar[frozenset[HandleType]] = frozenset(
        {HandleType.IMAGE, HandleType.TEXT}
    )

    input_images: list[str] = field(default_factory=list)
    input_prompt: str | None = None
    output_image: str | None = None
    aspect_ratio: str = "1:1"
    resolution: str = "1K"
    model: str = "nano-banana-pro"
    use_google_search: bool = False
    # Azure deployments; unset falls back to the aspect ratio mapping
    size: str | None = None
    gpt_image_size: str | None = None
    gpt_image_quality: str | None = None

    def produces_image(self) -> str | None:
        return self.output_image

    def requirements(self) -> InputRequirements:
        return InputRequirements(needs_text=True)


@dataclass
class LLMGenerateData(ExecutableData):
    kind: ClassVar[NodeKind] = NodeKind.LLM_GENERATE
    source_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.TEXT})
    target_handles: ClassVar[frozenset[HandleType]] = frozenset(
        {HandleType.IMAGE, HandleType.TEXT}
    )

    input_prompt: str | None = None
    input_images: list[str] = field(default_factory=list)
    output_text: str | None = None
    provider: str = "google"
    model: str = "gemini-2.5-flash"
    temperature: float = 0.7
    max_tokens: int = 1024

    def produces_text(self) -> str | None:
        return self.output_text

    def requirements(self) -> InputRequirements:
        return InputRequirements(needs_text=True)


@dataclass
class OutputData(ExecutableData):
    kind: ClassVar[NodeKind] = NodeKind.OUTPUT
    target_handles: ClassVar[frozenset[HandleType]] = frozenset({HandleType.IMAGE})

    image: str | None = None

    def requirements(self) -> InputRequirements:
        return InputRequirements(needs_image=True)


NODE_DATA_TYPES: dict[NodeKind, type[NodeData]] = {
    cls.kind: cls
    for cls in (
        ImageInputData,
        PromptData,
        AnnotationData,
        NanoBananaData,
        LLMGenerateData,
        OutputData,
    )
}

# Data nodes that are always treated as already-resolved sources
SOURCE_KINDS = frozenset({NodeKind.IMAGE_INPUT, NodeKind.PROMPT})

# Nodes that call an external provider and need a text input
GENERATION_KINDS = frozenset({NodeKind.NANO_BANANA, NodeKind.LLM_GENERATE})


def default_data(kind: NodeKind) -> NodeData:
    """Create an empty payload for a node kind."""
    return NODE_DATA_TYPES[kind]()


def data_from_dict(kind: NodeKind, data: dict[str, Any]) -> NodeData:
    """Rebuild a payload from its JSON form."""
    return NODE_DATA_TYPES[kind].from_dict(data)
