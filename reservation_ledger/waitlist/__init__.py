"""Waitlist queues and the promotion pass that confirms deferred bookings."""

from .queue import WaitlistQueue
from .schemas import WaitlistEntry

__all__ = ["WaitlistQueue", "WaitlistEntry"]
