"""Apply layer — write accepted artifacts to disk."""

from vouch.apply.writer import FileApplier, SideEffectApplier

__all__ = ["FileApplier", "SideEffectApplier"]
