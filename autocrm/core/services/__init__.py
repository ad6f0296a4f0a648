"""AutoCRM core services.

Shared services used across the platform:
- Email notifications (manager escalation)
"""
