"""Unit tests for MillesBTP web route modules.

Each route module has a corresponding test file. Routes are exercised
through FastAPI's TestClient with the worksite service replaced by a mock,
so these tests cover request/response validation, actor handling and the
mapping of core errors onto HTTP status codes.
"""
