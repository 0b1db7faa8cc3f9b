"""Sliding-window store adapters.

Counters talk to an ``AbstractWindowStore``; the Redis implementation runs
each operation as one server-side script, the in-memory one serves tests
and single-process use.
"""
