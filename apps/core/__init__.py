"""
Shared infrastructure for the HRMS API: base model, exceptions,
response envelope, pagination, authentication and logging.
"""
