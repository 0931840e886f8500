# shared/utils/patch.py
"""
Explicit partial-update object.

Collects only the fields a caller actually supplied and applies them as one
parameterized UPDATE, instead of assembling update statements by hand.
"""
import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class ModelPatch:
    """Set of field assignments restricted to an allow-list of field names."""

    def __init__(self, allowed_fields: Iterable[str], **values):
        self.allowed_fields = frozenset(allowed_fields)
        self._changes: Dict[str, Any] = {}
        for field, value in values.items():
            self.set(field, value)

    @classmethod
    def from_data(cls, allowed_fields: Iterable[str], data: Optional[Dict[str, Any]]):
        """Build a patch from request data, ignoring keys outside the allow-list."""
        allowed = frozenset(allowed_fields)
        patch = cls(allowed)
        for field, value in (data or {}).items():
            if field in allowed:
                patch.set(field, value)
        return patch

    def set(self, field: str, value: Any) -> 'ModelPatch':
        if field not in self.allowed_fields:
            raise KeyError(f"Field '{field}' cannot be patched")
        self._changes[field] = value
        return self

    def get(self, field: str, default: Any = None) -> Any:
        return self._changes.get(field, default)

    def has(self, field: str) -> bool:
        return field in self._changes

    @property
    def changes(self) -> Dict[str, Any]:
        return dict(self._changes)

    def __bool__(self):
        return bool(self._changes)

    def __repr__(self):
        return f"ModelPatch({self._changes!r})"

    def apply(self, queryset, pk) -> int:
        """Issue a single UPDATE for `pk`; returns the number of rows changed."""
        if not self._changes:
            return 0
        updated = queryset.filter(pk=pk).update(**self._changes)
        logger.debug(f"Patched {queryset.model.__name__} {pk}: {sorted(self._changes)}")
        return updated

    def apply_to_instance(self, instance) -> None:
        """Mirror the patched values on an in-memory instance."""
        for field, value in self._changes.items():
            setattr(instance, field, value)
