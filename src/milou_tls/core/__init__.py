"""Shared enums, errors and the pipeline state machine."""
