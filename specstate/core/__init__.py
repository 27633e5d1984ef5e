"""Core configuration, logging, errors and workflow rules."""
