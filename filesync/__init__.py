"""Incremental sync and encrypted content retrieval for remote file collections."""
