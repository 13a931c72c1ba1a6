"""
Job board backend package.

A FastAPI service for employee and employer accounts, job posts and job
applications, backed by Firebase Authentication, the Realtime Database and
Cloud Storage (or in-memory stand-ins for development and tests).
"""
