"""
Taskmarket collaboration service.

Users post local tasks, others apply, a chat opens per applicant, exact
locations are disclosed by consent inside that chat, and completed tasks are
reviewed.
"""

__version__ = "0.1.0"
