"""
Event-stream decoding and streaming sessions.

This package provides the incremental ``data:`` frame decoder and the
session that turns one HTTP response into a lazy sequence of tokens.
"""
