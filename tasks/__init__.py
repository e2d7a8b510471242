"""
Celery tasks module
Import all tasks here so Celery can discover them
"""
from . import notification_tasks

__all__ = ['notification_tasks']
