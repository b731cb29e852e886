IDENTITY_EVENTS_TOPIC = "identity-events"
PROJECT_EVENTS_TOPIC = "project-events"
TASK_EVENTS_TOPIC = "task-events"
