"""
Heimursaga API — Services Package
===================================

Business logic lives here, independent of HTTP concerns. Services receive
an `AsyncSession` per call and only `flush()`; the request-scoped
`get_db_session` dependency owns commit/rollback. Event listeners and
scheduled jobs open their own sessions through `async_session_factory`.
"""
