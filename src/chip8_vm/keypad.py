"""Sixteen-key hexadecimal keypad.

The host reports key transitions with ``set_key``; a transition from released
to pressed is a press edge, which is what Fx0A waits for.
"""

from typing import List


KEY_COUNT = 16


class Keypad:
    """Boolean state of keys 0x0-0xF."""

    def __init__(self):
        self._keys: List[bool] = [False] * KEY_COUNT

    def reset(self) -> None:
        self._keys = [False] * KEY_COUNT

    def set_key(self, index: int, pressed: bool) -> bool:
        """Update one key.

        Args:
            index: Key index 0x0-0xF
            pressed: New state of the key

        Returns:
            True if this call is a press edge (released -> pressed)

        Raises:
            ValueError: If index is not a valid key
        """
        if not 0 <= index < KEY_COUNT:
            raise ValueError(f"Invalid key index: {index}")

        was_pressed = self._keys[index]
        self._keys[index] = bool(pressed)
        return bool(pressed) and not was_pressed

    def is_pressed(self, index: int) -> bool:
        """Whether key ``index`` is held; values past 0xF are never pressed."""
        if not 0 <= index < KEY_COUNT:
            return False
        return self._keys[index]

    def pressed_keys(self) -> List[int]:
        return [index for index, pressed in enumerate(self._keys) if pressed]

    def release_all(self) -> None:
        self._keys = [False] * KEY_COUNT

    def __str__(self) -> str:
        return " ".join(f"{key:X}" for key in self.pressed_keys())
