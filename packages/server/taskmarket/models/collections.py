"""Collection names used by the collaboration services."""

TASKS = "tasks"
APPLICATIONS = "applications"
CHATS = "chats"
MESSAGES = "messages"
REVIEWS = "reviews"
USER_PROFILES = "user_profiles"
TASK_COMMENTS = "task_comments"
NOTIFICATIONS = "notifications"
