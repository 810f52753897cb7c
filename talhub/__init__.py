"""
TAL Hub - Tenant/Landlord Dispute Case Management
=================================================

Backend service for:
1. Tracking tenant-landlord dispute cases and their participants
2. Sharing documents, messages and deadlines inside a case

Every case-scoped row is visible only to the case participants or to admins.
"""

__version__ = "1.0.0"
