"""
Lifecycle services. Import the concrete service modules directly, e.g.
``from services.issue_service import IssueService``.
"""
