"""
Utilities package.
"""

from .logger import (
    console,
    build_console_handler,
    banner,
)

__all__ = [
    'console',
    'build_console_handler',
    'banner',
]
