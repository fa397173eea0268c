"""
TPHub Alerts backend.

FastAPI service that runs the daily anomaly-alert pipeline for TPHub:
anomaly queries against Supabase Postgres, consultant grouping, urgency
scoring, and Slack/email dispatch.
"""

__version__ = "1.0.0"
