"""Integration tests: end-to-end validated execution and CLI subprocess contracts."""
