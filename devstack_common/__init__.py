"""
Shared building blocks of the stack bootstrap: HTTP access, health probing,
step execution, persisted artifacts and logging.
"""
