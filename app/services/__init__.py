"""
Services layer - Business logic goes here.
Keep services focused on one concern (store, validation, audit, notifications).

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Every report status change goes through workflow_service
- The classifier suggests categories; it never decides transitions
"""
