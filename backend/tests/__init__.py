"""
Pytest test suite for the Buy-a-Tea backend.

Test categories:
- Unit tests: models, validators, record store, metrics, settings
- Service tests: wallet, contract and subscription services against mocks
- Controller tests: session lifecycle and feed ordering over an in-memory chain
- API tests: FastAPI routes through httpx ASGITransport
"""
