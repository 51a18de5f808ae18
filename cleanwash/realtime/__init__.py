"""
Realtime package initialization.

This module initializes the realtime package providing the Redis connection
and the row-level change feed that keeps live order views current.
"""
