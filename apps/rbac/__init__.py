"""
Role governance for the HRMS.

Roles are ranked by hierarchy level (1 is the most authoritative). Callers
may only create, edit, grant or assign below their own rank and inside their
organization/company scope. Every privilege change is written to an
append-only audit log in the same transaction.
"""
