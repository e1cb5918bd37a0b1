"""
Shared building blocks used by every app: the error taxonomy,
the HTTP boundary that maps it to responses, and health probes.
"""
