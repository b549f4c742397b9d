"""Shared utilities: logging and UTC date helpers."""
