"""Escalation — durable human-in-the-loop decision queue."""

from vouch.escalation.queue import EscalationQueue

__all__ = ["EscalationQueue"]
