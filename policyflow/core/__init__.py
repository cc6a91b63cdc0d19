"""Core infrastructure: errors, ids and database clients."""
