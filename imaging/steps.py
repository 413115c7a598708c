"""
Image step classes with a common interface.

Each step is a dataclass implementing the ImageStep interface. A step
applies one operation to an ImageRef in place and reports what it did as
metadata, so a pipeline can be logged and inspected step by step.

Usage:
    from imaging.steps import AutorotateStep, ThumbnailStep, Pipeline

    pipeline = Pipeline(steps=[
        AutorotateStep(),
        ThumbnailStep(width=320, height=240),
    ])
    result = pipeline.run(ref)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .image import ImageRef
from .text import LabelParams
from .types import Angle, Color, Direction, Intent, Interesting, Interpretation, Kernel

logger = logging.getLogger(__name__)


class ImageStep(ABC):
    """Base class for image steps.

    Steps mutate the ref they are given. Steps that learn something while
    applying (e.g. the orientation autorotate applied) expose it through
    ``get_metadata``.
    """

    @abstractmethod
    def apply(self, ref: ImageRef) -> None:
        """Apply this step to ``ref`` in place."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for logging and debugging."""

    def get_metadata(self) -> dict[str, Any]:
        """Return metadata produced by the last ``apply``. Empty by default."""
        return {}


@dataclass(frozen=True)
class ResizeStep(ImageStep):
    """Scale by a factor (``vscale`` defaults to ``scale``)."""

    scale: float
    vscale: float | None = None
    kernel: Kernel = Kernel.AUTO

    def apply(self, ref: ImageRef) -> None:
        ref.resize(self.scale, self.vscale, self.kernel)

    @property
    def name(self) -> str:
        return f"resize({self.scale})"


@dataclass(frozen=True)
class ThumbnailStep(ImageStep):
    width: int
    height: int
    crop: Interesting = Interesting.NONE

    def apply(self, ref: ImageRef) -> None:
        ref.thumbnail(self.width, self.height, self.crop)

    @property
    def name(self) -> str:
        return f"thumbnail({self.width}x{self.height})"


@dataclass(frozen=True)
class RotateStep(ImageStep):
    angle: Angle

    def apply(self, ref: ImageRef) -> None:
        ref.rotate(self.angle)

    @property
    def name(self) -> str:
        return f"rotate({int(self.angle)})"


@dataclass(frozen=True)
class FlipStep(ImageStep):
    direction: Direction

    def apply(self, ref: ImageRef) -> None:
        ref.flip(self.direction)

    @property
    def name(self) -> str:
        return f"flip({Direction(self.direction).value})"


@dataclass
class AutorotateStep(ImageStep):
    """Apply the EXIF orientation.

    Records the orientation that was applied (1 when the image was
    already upright).
    """

    _orientation: int = field(default=1, init=False, repr=False)

    def apply(self, ref: ImageRef) -> None:
        self._orientation = ref.autorotate()

    @property
    def name(self) -> str:
        return "autorotate"

    def get_metadata(self) -> dict[str, Any]:
        return {
            "orientation": self._orientation,
            "step_status": "applied" if self._orientation != 1 else "declined",
        }


@dataclass(frozen=True)
class CropStep(ImageStep):
    left: int
    top: int
    width: int
    height: int

    def apply(self, ref: ImageRef) -> None:
        ref.extract_area(self.left, self.top, self.width, self.height)

    @property
    def name(self) -> str:
        return f"crop({self.width}x{self.height}+{self.left}+{self.top})"


@dataclass
class FlattenStep(ImageStep):
    """Flatten alpha onto a background colour. Declines on opaque images."""

    background: Color = field(default_factory=Color)
    _had_alpha: bool = field(default=False, init=False, repr=False)

    def apply(self, ref: ImageRef) -> None:
        self._had_alpha = ref.has_alpha
        ref.flatten(self.background)

    @property
    def name(self) -> str:
        return "flatten"

    def get_metadata(self) -> dict[str, Any]:
        return {"step_status": "applied" if self._had_alpha else "declined"}


@dataclass(frozen=True)
class ColorspaceStep(ImageStep):
    interpretation: Interpretation

    def apply(self, ref: ImageRef) -> None:
        ref.to_colorspace(self.interpretation)

    @property
    def name(self) -> str:
        return f"colorspace({Interpretation(self.interpretation).value})"


@dataclass(frozen=True)
class IccTransformStep(ImageStep):
    """Transform into an output ICC profile (path, raw bytes or "srgb")."""

    output_profile: str | bytes
    input_profile: str | bytes | None = None
    intent: Intent = Intent.PERCEPTUAL
    embedded: bool = True

    def apply(self, ref: ImageRef) -> None:
        ref.icc_transform(
            self.output_profile, self.input_profile, self.intent, self.embedded
        )

    @property
    def name(self) -> str:
        return "icc_transform"


@dataclass(frozen=True)
class BlurStep(ImageStep):
    sigma: float

    def apply(self, ref: ImageRef) -> None:
        ref.gaussian_blur(self.sigma)

    @property
    def name(self) -> str:
        return f"blur({self.sigma})"


@dataclass(frozen=True)
class InvertStep(ImageStep):
    def apply(self, ref: ImageRef) -> None:
        ref.invert()

    @property
    def name(self) -> str:
        return "invert"


@dataclass(frozen=True)
class LabelStep(ImageStep):
    params: LabelParams

    def apply(self, ref: ImageRef) -> None:
        ref.label(self.params)

    @property
    def name(self) -> str:
        return "label"


@dataclass
class StepResult:
    """Result of applying a single step.

    Attributes:
        name: Name of the step.
        size_before: (width, height) before the step.
        size_after: (width, height) after the step.
        mode_after: Pillow mode after the step.
        metadata: Metadata reported by the step.
    """

    name: str
    size_before: tuple[int, int]
    size_after: tuple[int, int]
    mode_after: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.metadata.get("step_status", "applied")


@dataclass
class PipelineResult:
    """Results from running a pipeline over one image."""

    ref: ImageRef
    original_size: tuple[int, int]
    steps: list[StepResult] = field(default_factory=list)

    @property
    def final_size(self) -> tuple[int, int]:
        if not self.steps:
            return self.original_size
        return self.steps[-1].size_after

    def get_metadata(self, key: str) -> Any | None:
        """Return the first metadata value stored under ``key``, or None."""
        for step in self.steps:
            if key in step.metadata:
                return step.metadata[key]
        return None

    @property
    def all_metadata(self) -> dict[str, Any]:
        """All step metadata merged; later steps override earlier ones."""
        result = {}
        for step in self.steps:
            result.update(step.metadata)
        return result


@dataclass
class Pipeline:
    """A sequence of steps applied in order to one ImageRef.

    Attributes:
        steps: ImageStep instances to apply in order.
    """

    steps: list[ImageStep]

    def run(self, ref: ImageRef) -> PipelineResult:
        """Apply every step to ``ref`` (in place) and record what happened."""
        result = PipelineResult(ref=ref, original_size=(ref.width, ref.height))
        for step in self.steps:
            before = (ref.width, ref.height)
            step.apply(ref)
            metadata = step.get_metadata()
            logger.debug(
                "%s: %dx%d -> %dx%d", step.name, *before, ref.width, ref.height
            )
            result.steps.append(
                StepResult(
                    name=step.name,
                    size_before=before,
                    size_after=(ref.width, ref.height),
                    mode_after=ref.mode,
                    metadata=metadata,
                )
            )
        return result

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)
