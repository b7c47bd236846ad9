"""
FastAPI routers for the import service.

``imports`` accepts uploads and row retries; ``jobs`` serves progress polling.
"""
