"""HTTP surface of the file service.

A thin FastAPI layer that maps requests onto the ObjectStore contract and
storage errors onto HTTP status codes. It holds no storage logic itself.
"""
