"""Undo tree core: records, stacks, pending queues and groups."""
