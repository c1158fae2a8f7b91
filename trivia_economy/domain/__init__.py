"""Domain layer (pure logic).

- Keep economy rules and calculations here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI.
- Time is passed in as an argument; nothing here calls datetime.now().
"""
