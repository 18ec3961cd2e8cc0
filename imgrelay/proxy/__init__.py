"""Relay pipeline: URL validation, upstream fetch, and the request handler."""
