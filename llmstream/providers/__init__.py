"""
Provider clients built on the streaming pipeline.

Each provider builds its own requests and supplies a content extractor;
sending, decoding, cancellation and retries are shared.
"""
