from dataclasses import dataclass
from enum import Enum


class TextSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


@dataclass(frozen=True)
class FontConfig:
    font_size: float
    line_height: float


TEXT_SIZES: dict[TextSize, FontConfig] = {
    TextSize.SMALL: FontConfig(font_size=16, line_height=28),
    TextSize.MEDIUM: FontConfig(font_size=20, line_height=36),
    TextSize.LARGE: FontConfig(font_size=24, line_height=42),
}

# Styling of the active unit, used when sizing units to one screen
PAGINATION_FONT = TEXT_SIZES[TextSize.LARGE]


@dataclass(frozen=True)
class Viewport:
    """On-screen rectangle the active unit is laid out in."""
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0
    padding: float = 24.0

    @property
    def is_measured(self) -> bool:
        return self.width > 2 * self.padding and self.height > 0


def font_for(text_size: TextSize | str) -> FontConfig:
    return TEXT_SIZES[TextSize(text_size)]
