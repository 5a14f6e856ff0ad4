"""ItemTransform codec.

IDML places every page item with a 6-value affine matrix ``a b c d tx ty``
(translation in points). A point (x, y) in item space maps to

    x' = a*x + c*y + tx
    y' = b*x + d*y + ty

The rendering surface wants the matrix split into scale, rotation, skew and
a pixel translation. ``decompose`` and ``compose`` convert between the two.

Decomposition:
    scale_x = sqrt(a^2 + b^2)          length of the mapped x axis
    scale_y = sqrt(c^2 + d^2)          length of the mapped y axis
    angle   = atan2(b, a)              direction of the mapped x axis
    skew_x  = angle + 90 - atan2(d, c) deviation of the y axis from
                                       perpendicular, in (-180, 180]

Composition is the exact inverse:
    a = sx*cos(angle)          b = sx*sin(angle)
    c = sy*sin(skew - angle)   d = sy*cos(skew - angle)

With zero skew ``d`` reduces to ``sy*cos(angle)``. Because skew is measured
against the rotated y axis, rotation, skew and reflection all survive a
decompose/compose round trip.
"""

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from .units import DEFAULT_POINTS_TO_PIXELS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Matrix:
    """Affine matrix in IDML order (a, b, c, d, tx, ty)."""

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    @classmethod
    def identity(cls) -> "Matrix":
        return cls()

    @classmethod
    def translation(cls, tx: float, ty: float) -> "Matrix":
        return cls(1.0, 0.0, 0.0, 1.0, tx, ty)

    def values(self) -> Tuple[float, float, float, float, float, float]:
        return (self.a, self.b, self.c, self.d, self.tx, self.ty)

    @property
    def determinant(self) -> float:
        return self.a * self.d - self.b * self.c

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        """Map a point from item space into parent space."""
        return (
            self.a * x + self.c * y + self.tx,
            self.b * x + self.d * y + self.ty,
        )

    def then(self, outer: "Matrix") -> "Matrix":
        """
        Matrix applying ``self`` first and ``outer`` second.

        Used to flatten an item inside a group:
        ``child.transform.then(group.transform)`` maps child space
        directly into the group's parent space.
        """
        return Matrix(
            a=self.a * outer.a + self.b * outer.c,
            b=self.a * outer.b + self.b * outer.d,
            c=self.c * outer.a + self.d * outer.c,
            d=self.c * outer.b + self.d * outer.d,
            tx=self.tx * outer.a + self.ty * outer.c + outer.tx,
            ty=self.tx * outer.b + self.ty * outer.d + outer.ty,
        )

    def inverse(self) -> "Matrix":
        det = self.determinant
        if abs(det) < 1e-12:
            raise ValueError(f"Matrix is not invertible: {self}")
        a = self.d / det
        b = -self.b / det
        c = -self.c / det
        d = self.a / det
        return Matrix(
            a=a,
            b=b,
            c=c,
            d=d,
            tx=-(self.tx * a + self.ty * c),
            ty=-(self.tx * b + self.ty * d),
        )

    def translated(self, dx: float, dy: float) -> "Matrix":
        return Matrix(self.a, self.b, self.c, self.d, self.tx + dx, self.ty + dy)

    def almost_equal(self, other: "Matrix", tolerance: float = 1e-4) -> bool:
        return all(
            abs(mine - theirs) <= tolerance
            for mine, theirs in zip(self.values(), other.values())
        )


IDENTITY = Matrix()


@dataclass(frozen=True)
class RenderProps:
    """
    Rendering-surface view of a matrix.

    Attributes:
        scale_x: Length of the mapped x axis
        scale_y: Length of the mapped y axis
        angle: Rotation in degrees
        left: Horizontal translation in pixels
        top: Vertical translation in pixels
        skew_x: Skew of the y axis in degrees (0 for rotation/scale only)
    """

    scale_x: float = 1.0
    scale_y: float = 1.0
    angle: float = 0.0
    left: float = 0.0
    top: float = 0.0
    skew_x: float = 0.0


def parse_matrix(text: str, context: str = "") -> Matrix:
    """
    Parse an ItemTransform string.

    Malformed input (wrong value count, non-numeric or non-finite values)
    yields the identity matrix and a warning; it never raises.

    Example:
        >>> parse_matrix("1 0 0 1 10 20").tx
        10.0
        >>> parse_matrix("garbage") == IDENTITY
        True
    """
    matrix = try_parse_matrix(text)
    if matrix is None:
        where = f" on {context}" if context else ""
        logger.warning(f"Malformed ItemTransform {text!r}{where}, using identity")
        return IDENTITY
    return matrix


def try_parse_matrix(text) -> Union[Matrix, None]:
    """Parse an ItemTransform string, returning None when malformed."""
    if text is None:
        return None
    parts = str(text).split()
    if len(parts) != 6:
        return None
    try:
        values = [float(p) for p in parts]
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in values):
        return None
    return Matrix(*values)


def _fmt(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    # -0.000000 is a spurious diff against 0.000000
    if text.lstrip("-").strip("0.") == "":
        text = text.lstrip("-")
    return text


def format_matrix(matrix: Matrix, precision: int = 6) -> str:
    """
    Format a matrix as IDML text with fixed precision.

    Example:
        >>> format_matrix(IDENTITY)
        '1.000000 0.000000 0.000000 1.000000 0.000000 0.000000'
    """
    return " ".join(_fmt(v, precision) for v in matrix.values())


def _normalize_angle(degrees: float) -> float:
    degrees = math.fmod(degrees, 360.0)
    if degrees <= -180.0:
        degrees += 360.0
    elif degrees > 180.0:
        degrees -= 360.0
    return degrees


MatrixLike = Union[Matrix, str, Sequence[float]]


def _coerce(matrix: MatrixLike) -> Matrix:
    if isinstance(matrix, Matrix):
        return matrix
    if isinstance(matrix, str):
        return parse_matrix(matrix)
    values = list(matrix)
    if len(values) != 6:
        logger.warning(f"Matrix needs 6 values, got {len(values)}; using identity")
        return IDENTITY
    return Matrix(*(float(v) for v in values))


def decompose(
    matrix: MatrixLike, points_to_pixels: float = DEFAULT_POINTS_TO_PIXELS
) -> RenderProps:
    """
    Split a matrix into rendering properties.

    Args:
        matrix: Matrix, ItemTransform string or 6-value sequence
        points_to_pixels: Pixels per point for the translation

    Returns:
        RenderProps (identity props for malformed input)

    Example:
        >>> props = decompose("0 1 -1 0 100 50", points_to_pixels=1)
        >>> round(props.angle), props.left, props.top
        (90, 100.0, 50.0)
    """
    m = _coerce(matrix)
    scale_x = math.hypot(m.a, m.b)
    scale_y = math.hypot(m.c, m.d)

    angle = math.degrees(math.atan2(m.b, m.a)) if scale_x else 0.0
    if scale_y:
        y_axis = math.degrees(math.atan2(m.d, m.c))
        skew = _normalize_angle(angle + 90.0 - y_axis)
    else:
        skew = 0.0

    return RenderProps(
        scale_x=scale_x,
        scale_y=scale_y,
        angle=angle,
        left=m.tx * points_to_pixels,
        top=m.ty * points_to_pixels,
        skew_x=skew,
    )


def compose(
    props: RenderProps, points_to_pixels: float = DEFAULT_POINTS_TO_PIXELS
) -> Matrix:
    """Rebuild a matrix from rendering properties (inverse of ``decompose``)."""
    theta = math.radians(props.angle)
    skew = math.radians(props.skew_x)
    return Matrix(
        a=props.scale_x * math.cos(theta),
        b=props.scale_x * math.sin(theta),
        c=props.scale_y * math.sin(skew - theta),
        d=props.scale_y * math.cos(skew - theta),
        tx=props.left / points_to_pixels,
        ty=props.top / points_to_pixels,
    )


def compose_string(
    props: RenderProps,
    points_to_pixels: float = DEFAULT_POINTS_TO_PIXELS,
    precision: int = 6,
) -> str:
    return format_matrix(compose(props, points_to_pixels), precision)
