"""Core data structures for tissuealign."""

import dataclasses
import enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from .affine import AffineTransform2D
from .exceptions import ValidationError


class _ParsableEnum(enum.Enum):
    @classmethod
    def parse(cls, text):
        if isinstance(text, cls):
            return text
        key = str(text).strip().lower().replace("_", "-")
        for member in cls:
            if key in (member.value, member.name.lower().replace("_", "-")):
                return member
        choices = ", ".join(mm.value for mm in cls)
        raise ValidationError(f"Unknown {cls.__name__} {text!r} (choose from {choices})")


class AlignmentStrategy(_ParsableEnum):
    INTENSITY = "intensity"
    AREA_ANNOTATIONS = "area-annotations"
    POINT_ANNOTATIONS = "point-annotations"


class RegistrationKind(_ParsableEnum):
    AFFINE = "affine"
    RIGID = "rigid"


AREA_KINDS = ("polygon", "rectangle", "ellipse")
GEOMETRY_KINDS = ("point", "points", "line", "polyline") + AREA_KINDS


@dataclasses.dataclass
class Raster:
    """Pixels read from an image source. `palette` marks indexed data."""

    pixels: np.ndarray
    palette: Optional[np.ndarray] = None

    @property
    def is_indexed(self) -> bool:
        return (
            self.palette is not None
            and self.pixels.ndim == 2
            and self.pixels.dtype == np.uint8
        )

    @property
    def shape(self):
        return self.pixels.shape


@dataclasses.dataclass
class Geometry:
    """Vertices of an annotation, in full-resolution xy pixel coordinates."""

    kind: str
    parts: List[np.ndarray]
    holes: List[np.ndarray] = dataclasses.field(default_factory=list)

    def __post_init__(self):
        if self.kind not in GEOMETRY_KINDS:
            raise ValidationError(f"Unsupported geometry kind {self.kind!r}")
        self.parts = [np.asarray(pp, dtype="float64").reshape(-1, 2) for pp in self.parts]
        self.holes = [np.asarray(hh, dtype="float64").reshape(-1, 2) for hh in self.holes]

    @property
    def is_area(self) -> bool:
        return self.kind in AREA_KINDS

    @property
    def points(self) -> np.ndarray:
        if not self.parts:
            return np.zeros((0, 2))
        return np.vstack(self.parts)

    @classmethod
    def point(cls, x, y):
        return cls("point", [[[x, y]]])

    @classmethod
    def multi_point(cls, points):
        return cls("points", [points])

    @classmethod
    def line(cls, x1, y1, x2, y2):
        return cls("line", [[[x1, y1], [x2, y2]]])

    @classmethod
    def polyline(cls, points):
        return cls("polyline", [points])

    @classmethod
    def polygon(cls, points, holes=()):
        return cls("polygon", [points], list(holes))

    @classmethod
    def rectangle(cls, x, y, width, height):
        corners = [
            [x, y],
            [x + width, y],
            [x + width, y + height],
            [x, y + height],
        ]
        return cls("rectangle", [corners])

    @classmethod
    def ellipse(cls, x_center, y_center, x_rad, y_rad):
        t = np.linspace(0, 2 * np.pi, 100)
        x = x_rad * np.cos(t) + x_center
        y = y_rad * np.sin(t) + y_center
        return cls("ellipse", [np.array([x, y]).T])


@dataclasses.dataclass
class Annotation:
    geometry: Geometry
    category: Optional[str] = None
    name: Optional[str] = None


@dataclasses.dataclass
class ImageEntry:
    """One side of an alignment: pixels plus the annotations drawn on them."""

    source: object
    annotations: Sequence[Annotation] = ()
    name: str = ""

    def __str__(self) -> str:
        return self.name or str(self.source)


# `None` is the "no category" key
CategoryLabelTable = Dict[Optional[str], int]


@dataclasses.dataclass
class AlignmentOutcome:
    """What a successful alignment wrote, plus its quality score."""

    transform: AffineTransform2D
    score: Optional[float]
    downsample: float
    strategy: AlignmentStrategy
    kind: RegistrationKind


@dataclasses.dataclass
class AlignmentTask:
    """Parameters for a single alignment task."""

    base_path: str
    selected_path: str
    strategy: str = AlignmentStrategy.INTENSITY.value
    registration: str = RegistrationKind.AFFINE.value
    pixel_size: float = 20.0
    initial_transform: str = "1, 0, 0, 0, 1, 0"
    base_annotations: Optional[str] = None
    selected_annotations: Optional[str] = None
    base_pixel_size: Optional[float] = None
    selected_pixel_size: Optional[float] = None
    channel: Optional[int] = None
    qc_out_dir: Optional[str] = None
    propagate_out: Optional[str] = None
    dry_run: bool = False
    row_num: Optional[int] = None  # For batch mode context


@dataclasses.dataclass
class AlignmentResult:
    """Result of a single alignment task."""

    base_path: str
    selected_path: str
    success: bool
    message: str
    transform: Optional[AffineTransform2D] = None
    score: Optional[float] = None
    qc_plot_path: Optional[str] = None
    annotations_propagated: Optional[int] = None
    row_num: Optional[int] = None
