from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union


class ImageURL:
    """
    Type-safe wrapper for image attachment URLs.

    Example:
        >>> url = ImageURL("https://cdn.discordapp.com/attachments/1/2/image.png")
        >>> str(url)
        'https://cdn.discordapp.com/attachments/1/2/image.png'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, "ImageURL"]) -> None:
        """
        Args:
            value: The image URL as a string or ImageURL.

        Raises:
            ValueError: If the value is empty or not a string.
        """
        if isinstance(value, ImageURL):
            self._value = value._value
        elif isinstance(value, str):
            url = value.strip()
            if not url:
                raise ValueError("ImageURL cannot be empty")
            self._value = url
        else:
            raise ValueError(f"Cannot create ImageURL from {type(value).__name__}: {value}")

    def to_string(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"ImageURL({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ImageURL):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass(frozen=True, slots=True)
class ImageRef:
    """
    Reference to an image handed to the detection chain.

    At least one of ``url`` or ``data`` is set. Providers that only accept URLs
    skip references without one; hashing requires ``data``.
    """

    url: ImageURL | None = None
    data: bytes | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.url is None and self.data is None:
            raise ValueError("ImageRef needs a URL or image bytes")

    @property
    def size_bytes(self) -> int:
        return len(self.data) if self.data is not None else 0


@dataclass(frozen=True, slots=True)
class ScanRequest:
    """A single image waiting to be scanned. Consumed exactly once by the scheduler."""

    image_ref: ImageRef
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
