"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Canonical strings and signing
    - Transport status handling, streaming and cancellation
    - Object operations against an in-memory service
    - Multipart engine (splitting, ordering, abort, cancellation)
    - Configuration, cancellation tokens, logging
    - Live bucket suite (opt-in)
"""
