"""
Redis-backed job processing.

- Ready list, delayed sorted set and dead-letter list per job type
- Sequential processors, several of which may compete on one queue
- Exponential backoff retries re-injected by the retry scheduler
- Registry-based handlers with typed payload models
"""
