"""llamaio - users and tasks record-management API."""
