"""
Pytest suite for the Order Desk backend.

Test categories:
- Unit tests: region derivation, identifier formatting, pipeline rewrites
- Integration tests: services against in-memory / file-backed SQLite
- API tests: FastAPI routes through httpx
"""
