"""
Freehand drawing -> textual stroke description.

The learner's capture is split into strokes at large gaps, each stroke is
thinned, and every stroke is summarised by direction, length and whether it
is straight or curved. The description is what the model sees; character
identification itself is left to the content gateway.
"""

from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

import numpy as np

from .gateway import ContentGateway
from .stats import round_half_up
from .structured import RecognitionResult

Point = Tuple[float, float]
PointLike = Union[Sequence[float], Mapping[str, float]]

SIMPLIFY_THRESHOLD = 10.0
STROKE_GAP_THRESHOLD = 30.0
STRAIGHTNESS_THRESHOLD = 0.9

NO_DRAWING = "No drawing provided"


def _as_array(points: Iterable[PointLike]) -> np.ndarray:
    coords = []
    for point in points:
        try:
            if isinstance(point, Mapping):
                coords.append((float(point["x"]), float(point["y"])))
            else:
                x, y = point
                coords.append((float(x), float(y)))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid point {point!r}: expected (x, y) or {{'x': .., 'y': ..}}") from e
    return np.array(coords, dtype=float).reshape(-1, 2)


def _to_points(arr: np.ndarray) -> List[Point]:
    return [(float(x), float(y)) for x, y in arr]


def simplify_points(points: Iterable[PointLike], threshold: float = SIMPLIFY_THRESHOLD) -> List[Point]:
    """Keep the first point, every point further than `threshold` from the last kept one, and the last point."""
    arr = _as_array(points)
    if len(arr) <= 2:
        return _to_points(arr)

    kept = [0]
    for i in range(1, len(arr)):
        if np.linalg.norm(arr[i] - arr[kept[-1]]) > threshold:
            kept.append(i)
    if kept[-1] != len(arr) - 1:
        kept.append(len(arr) - 1)
    return _to_points(arr[kept])


def segment_strokes(points: Iterable[PointLike], gap_threshold: float = STROKE_GAP_THRESHOLD) -> List[List[Point]]:
    """Split a point sequence wherever consecutive points are more than `gap_threshold` apart."""
    arr = _as_array(points)
    if len(arr) == 0:
        return []
    gaps = np.linalg.norm(np.diff(arr, axis=0), axis=1)
    breaks = np.nonzero(gaps > gap_threshold)[0] + 1
    return [_to_points(part) for part in np.split(arr, breaks)]


def classify_direction(dx: float, dy: float) -> str:
    """One of eight compass buckets; an axis wins when it is more than twice the other.

    Screen coordinates: y grows downwards.
    """
    abs_x, abs_y = abs(dx), abs(dy)
    if abs_x > abs_y * 2:
        return "right" if dx > 0 else "left"
    if abs_y > abs_x * 2:
        return "down" if dy > 0 else "up"
    if dx > 0 and dy > 0:
        return "down-right"
    if dx > 0 and dy < 0:
        return "up-right"
    if dx < 0 and dy > 0:
        return "down-left"
    return "up-left"


def stroke_straightness(stroke: Sequence[PointLike]) -> float:
    """Straight-line distance over path length; 1.0 for a perfectly straight stroke."""
    arr = _as_array(stroke)
    if len(arr) < 2:
        return 1.0
    path_length = float(np.linalg.norm(np.diff(arr, axis=0), axis=1).sum())
    if path_length == 0:
        return 1.0
    return float(np.linalg.norm(arr[-1] - arr[0])) / path_length


def is_straight(stroke: Sequence[PointLike]) -> bool:
    if len(stroke) <= 2:
        return True
    return stroke_straightness(stroke) > STRAIGHTNESS_THRESHOLD


def describe_stroke(number: int, stroke: Sequence[PointLike]) -> str:
    arr = _as_array(stroke)
    dx, dy = arr[-1] - arr[0]
    length = float(np.hypot(dx, dy))
    shape = "straight" if is_straight(stroke) else "curved"
    return f"Stroke {number}: {classify_direction(float(dx), float(dy))} - length: {round_half_up(length)}px ({shape} line)"


def drawing_strokes(points: Iterable[PointLike]) -> List[List[Point]]:
    """Strokes of a raw capture, each thinned for description."""
    return [simplify_points(stroke) for stroke in segment_strokes(points)]


def describe_drawing(points: Iterable[PointLike]) -> str:
    strokes = drawing_strokes(points)
    if not strokes:
        return NO_DRAWING
    lines = [f"Drawing with {len(strokes)} strokes:"]
    lines.extend(describe_stroke(number, stroke) for number, stroke in enumerate(strokes, 1))
    return "\n".join(lines)


def flatten_strokes(strokes: Iterable[Iterable[PointLike]]) -> List[Any]:
    """Concatenate separately captured strokes into one point sequence."""
    return [point for stroke in strokes for point in stroke]


def recognize_drawing(points: Iterable[PointLike], gateway: ContentGateway) -> RecognitionResult:
    points = list(points)
    if not points:
        raise ValueError("Please draw a kanji before recognizing.")
    description = describe_drawing(points)
    return gateway.identify_from_description(description)
