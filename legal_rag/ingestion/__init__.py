"""Ingestion package: document chunking and the queue-driven ingestion worker.

See worker.py for the job-processing entrypoint and operator CLI.
"""
