from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle in unit page coordinates (or pixels, where noted)."""

    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rect":
        return cls(
            x=float(data["x"]), y=float(data["y"]), w=float(data["w"]), h=float(data["h"])
        )
