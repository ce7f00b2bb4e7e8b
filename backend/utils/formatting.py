"""
Display formatting helpers for registry data
"""

from typing import Optional, Union

BINARY_UNITS = ('B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB')


def format_binary_size(num_bytes: Optional[Union[int, float, str]]) -> str:
    """
    Format a byte count with binary units and two decimals.

    Examples:
        512 → "512.00 B"
        1536 → "1.50 KiB"
        None → "-"
    """
    try:
        value = float(num_bytes)
    except (TypeError, ValueError):
        return '-'
    if value != value:  # NaN
        return '-'

    unit = BINARY_UNITS[0]
    for unit in BINARY_UNITS:
        if abs(value) < 1024 or unit == BINARY_UNITS[-1]:
            break
        value /= 1024

    return f"{value:.2f} {unit}"


def strip_scheme(url: Optional[str]) -> str:
    """'https://registry.example.com' → 'registry.example.com'"""
    if not url:
        return ''
    for prefix in ('https://', 'http://'):
        if url.startswith(prefix):
            return url[len(prefix):]
    return url


def short_digest(digest: Optional[str], length: int = 12) -> str:
    """'sha256:abcdef0123456789...' → 'abcdef012345'"""
    if not digest:
        return ''
    return digest.split(':', 1)[-1][:length]
