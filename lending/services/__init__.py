"""Library Lending - Services Package

This package contains service modules built on top of the catalog:
- Admin identity and sessions (auth_service.py)
- Due-date reminders and overdue notices (notification_service.py)
"""
