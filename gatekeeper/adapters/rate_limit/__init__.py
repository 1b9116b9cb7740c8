"""Rate limiting adapters.

This package holds the two limiting strategies behind the admission
controller: a Redis token bucket shared by every instance and an in-memory
fixed-window counter used when Redis is unavailable, plus the health monitor
that chooses between them.
"""
