"""Default style catalog."""

from dataclasses import dataclass

CUSTOM_MODE = "custom"


@dataclass(frozen=True)
class StyleMode:
    """A selectable stylization preset."""

    key: str
    name: str
    emoji: str
    prompt: str


DEFAULT_MODES: dict[str, StyleMode] = {
    mode.key: mode
    for mode in (
        StyleMode(
            key="renaissance",
            name="Renaissance",
            emoji="\U0001f3a8",
            prompt="Make the person in the photo look like a Renaissance painting.",
        ),
        StyleMode(
            key="cartoon",
            name="Cartoon Craze",
            emoji="\U0001f603",
            prompt=(
                "A friendly, colorful 3D cartoon style like a modern animated movie. "
                "Soft shading, rounded features, and a warm, inviting look."
            ),
        ),
        StyleMode(
            key="statue",
            name="Statue",
            emoji="\U0001f3db️",
            prompt=(
                "Make the person look like a classical marble statue, "
                "including the clothes and eyes."
            ),
        ),
        StyleMode(
            key="moderncomic",
            name="Modern Comic",
            emoji="\U0001f4a5",
            prompt=(
                "A modern, dynamic comic book style from the 90s/2000s. Sharp, "
                "detailed inks, complex cross-hatching for shadows, and vibrant "
                "digitally-painted colors with energetic poses."
            ),
        ),
        StyleMode(
            key="beard",
            name="Big Beard",
            emoji="\U0001f9d4",
            prompt="Make the person in the photo look like they have a huge beard.",
        ),
        StyleMode(
            key=CUSTOM_MODE,
            name="Custom",
            emoji="✏️",
            prompt="",
        ),
    )
}

DEFAULT_MODE = "renaissance"
