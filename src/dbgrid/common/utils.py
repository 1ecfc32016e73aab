from typing import Any, Optional

ELLIPSIS = "…"


def to_text(value: Any) -> Optional[str]:
    """Renders a database value as the string submitted back on save.

    None stays None so callers can tell NULL from the empty string. Booleans
    become "1"/"0", which every backend's numeric or boolean cast accepts.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def truncate_cell(value: Any, max_length: int) -> Optional[str]:
    """Renders a cell for display, cut to `max_length` code points plus an ellipsis."""
    text = to_text(value)
    if text is not None and len(text) > max_length:
        return text[:max_length] + ELLIPSIS
    return text


_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_size(size_bytes: Optional[int]) -> Optional[str]:
    """Human-readable size in 1024-based units, e.g. "1.5 MB"."""
    if size_bytes is None:
        return None
    size = float(max(0, size_bytes))
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    if unit == 0:
        return f"{int(size)} B"
    return f"{size:.1f} {_SIZE_UNITS[unit]}"
