"""
API server package — the HTTP-facing request gateway.

Validates and authenticates requests, publishes commands to the broker and,
for actions that must look synchronous, suspends the caller until the
worker's completion (or the timeout) arrives.
"""
