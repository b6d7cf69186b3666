"""CRM module -- contacts, deals, activities, reminders and tags.

Provides SQLAlchemy models, Pydantic schemas, CrmRepository for async CRUD,
pipeline rules and metrics, and LeadIntakeService for inbound leads.
"""
