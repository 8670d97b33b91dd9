from dataclasses import dataclass
from typing import Tuple

# --- Rotation helpers ---

ROTATIONS = (0, 90, 180, 270)


def normalize_rotation(degrees: int) -> int:
    """Fold any multiple of 90 (negative included) into 0/90/180/270."""
    deg = int(degrees)
    if deg % 90 != 0:
        raise ValueError(f"Rotation must be a multiple of 90 degrees: {degrees}")
    return deg % 360


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle; x/y is the top-left corner."""
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    def contains(self, other: "Rect", tol: float = 1e-9) -> bool:
        return (
            self.x <= other.x + tol
            and self.y <= other.y + tol
            and self.x + self.width >= other.x + other.width - tol
            and self.y + self.height >= other.y + other.height - tol
        )

    def is_close(self, other: "Rect", tol: float = 1e-9) -> bool:
        return all(abs(a - b) <= tol for a, b in zip(self.as_tuple(), other.as_tuple()))


def to_display(rect: Rect, rotation: int) -> Rect:
    """Canonical (unrotated page) rect -> rect on the page as currently shown.

    Rotation is clockwise. At 90/270 the page orientation flips, so width and
    height swap.
    """
    r = normalize_rotation(rotation)
    x, y, w, h = rect.as_tuple()
    if r == 90:
        return Rect(1 - y - h, x, h, w)
    if r == 180:
        return Rect(1 - x - w, 1 - y - h, w, h)
    if r == 270:
        return Rect(y, 1 - x - w, h, w)
    return rect


def to_canonical(rect: Rect, rotation: int) -> Rect:
    """Exact inverse of `to_display` for the same rotation."""
    r = normalize_rotation(rotation)
    x, y, w, h = rect.as_tuple()
    if r == 90:
        return Rect(y, 1 - x - w, h, w)
    if r == 180:
        return Rect(1 - x - w, 1 - y - h, w, h)
    if r == 270:
        return Rect(1 - y - h, x, h, w)
    return rect


# --- Page point space ---

@dataclass(frozen=True)
class PageBox:
    """Unrotated media box of a page in PDF points (origin bottom-left)."""
    left: float
    bottom: float
    width: float
    height: float


def canonical_to_points(rect: Rect, box: PageBox) -> Rect:
    """Canonical rect -> PDF user space. Returned y is the rect's bottom edge."""
    w = rect.width * box.width
    h = rect.height * box.height
    x = box.left + rect.x * box.width
    y = box.bottom + box.height - rect.y * box.height - h
    return Rect(x, y, w, h)


def points_to_canonical(rect: Rect, box: PageBox) -> Rect:
    x = (rect.x - box.left) / box.width
    w = rect.width / box.width
    h = rect.height / box.height
    y = (box.bottom + box.height - rect.y - rect.height) / box.height
    return Rect(x, y, w, h)


def px_to_pt(px: float) -> float:
    # 96 CSS px per inch, 72 points per inch
    return float(px) * 72.0 / 96.0


def pt_to_px(pt: float) -> float:
    return float(pt) * 96.0 / 72.0
