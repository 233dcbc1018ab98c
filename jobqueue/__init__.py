"""
Job Queue Coordination Service

Submitters enqueue prioritized jobs, processors pull the next eligible job and
report completion, and submitters poll a cache-fronted status endpoint.
"""

__version__ = "1.0.0"
