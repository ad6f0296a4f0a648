"""AutoCRM core platform module.

Shared infrastructure used by the sales assistant:
- Database connection pool and BaseRepository
- Structured logging and API helpers
- Email notifications
"""
