"""
Redaction of sensitive fields in caller-supplied payloads.

Runs before persistence and notification so no secret is ever stored or sent.
"""

from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

REDACTED_PLACEHOLDER = "[redacted]"

SENSITIVE_KEYS: FrozenSet[str] = frozenset({
    "password",
    "pass",
    "pwd",
    "token",
    "auth",
    "authorization",
    "apikey",
    "api_key",
    "api-key",
    "secret",
    "refresh_token",
})


# (parent, key, key_is_mapping_key)
_Trail = Tuple[Any, Any, bool]


def _render_path(trail: Optional[_Trail]) -> str:
    """Dotted path such as ``device.sessions[0].token``."""
    parts: List[str] = []
    while trail is not None:
        trail, key, is_mapping = trail
        parts.append(f".{key}" if is_mapping else f"[{key}]")
    path = "".join(reversed(parts))
    return path[1:] if path.startswith(".") else path


class Redactor:
    """
    Replaces the values of deny-listed keys with a fixed placeholder.

    Features:
    - Case-insensitive exact key matching
    - Deep traversal of mappings and sequences, without recursion
    - Whole-value replacement, whatever the shape under a sensitive key
    - Returns a fresh tree, the input is left untouched
    """

    def __init__(self, extra_keys: Iterable[str] = ()) -> None:
        self.sensitive_keys = SENSITIVE_KEYS.union(key.lower() for key in extra_keys)

    def is_sensitive(self, key: Any) -> bool:
        """Check a mapping key against the deny-list."""
        return isinstance(key, str) and key.lower() in self.sensitive_keys

    def redact(self, value: Any) -> Any:
        """
        Return a redacted copy of a JSON-like value tree.

        Walks with an explicit stack, so nesting depth is bounded by memory
        rather than the interpreter's recursion limit.

        Args:
            value: Decoded JSON value (dict, list, or scalar)

        Returns:
            New tree with every sensitive-keyed value replaced
        """
        if not isinstance(value, (dict, list, tuple)):
            return value

        root = self._empty_like(value)
        # Paths are parent links, rendered only when a field is redacted
        stack: List[Tuple[Any, Any, Optional[_Trail]]] = [(value, root, None)]

        while stack:
            source, target, trail = stack.pop()
            is_mapping = isinstance(source, dict)
            entries = source.items() if is_mapping else enumerate(source)

            for key, item in entries:
                if is_mapping and self.is_sensitive(key):
                    target[key] = REDACTED_PLACEHOLDER
                    logger.debug(
                        "Redacted sensitive field",
                        path=_render_path((trail, key, is_mapping)),
                        original_type=type(item).__name__,
                    )
                elif isinstance(item, (dict, list, tuple)):
                    child = self._empty_like(item)
                    target[key] = child
                    stack.append((item, child, (trail, key, is_mapping)))
                else:
                    target[key] = item

        return root

    @staticmethod
    def _empty_like(value: Any) -> Any:
        # Lists are pre-sized so children can be filled by index in any order
        if isinstance(value, dict):
            return {}
        return [None] * len(value)


_default_redactor = Redactor()


def redact(value: Any, redactor: Optional[Redactor] = None) -> Any:
    """Redact with the given redactor, or the built-in deny-list."""
    return (redactor or _default_redactor).redact(value)
