"""Shared helpers: form validation and CLI output rendering."""
