# fieldservice/core/notifications/__init__.py
"""
Customer notifications.

- ``messages`` -- pure message builders (ETA, subjects)
- ``dispatcher`` -- delivery, delivery records and the retry sweep
"""
