"""
Regular expression plumbing shared by the text rewriters.

Patterns are compiled lazily on first use and memoized for the life of the
process. Every substitution goes through substitute(), which turns an engine
failure into a RewriteError so each rewriter can fall back to its input.
"""

import re
from functools import lru_cache
from typing import Callable, Union

from .exceptions import RewriteError

Replacement = Union[str, Callable[[re.Match], str]]


@lru_cache(maxsize=None)
def compiled(pattern: str, flags: int = 0) -> re.Pattern:
    """Compile a pattern once per process."""
    return re.compile(pattern, flags)


def substitute(name: str, pattern: re.Pattern, replacement: Replacement,
               text: str, count: int = 0) -> str:
    """
    Run pattern.sub() and report engine failures as RewriteError.

    Args:
        name: Short label of the transform, used in the error
        pattern: Compiled pattern
        replacement: Replacement string or callback
        text: Text to rewrite
        count: Maximum number of replacements (0 = all)

    Returns:
        The rewritten text
    """
    try:
        return pattern.sub(replacement, text, count=count)
    except (re.error, RecursionError) as e:
        raise RewriteError(
            f"Pattern engine failed during {name}: {e}",
            pattern=name,
            details={"length": len(text)}
        ) from e
