'''
TPHub Alerts Test Suite

Test Modules:
-------------
- test_grouping.py: company index and per-consultant fan-out
- test_scoring.py: urgency score, severity, simulation and real-data modes
- test_formatting.py: date labels, Slack and email bodies
- test_dispatch.py: Slack webhook and Resend delivery results
- test_sources.py: concurrent fetches with partial failures
- test_api.py: endpoint contracts, auth and error envelope
- test_jobs.py: daily run and per-consultant isolation
'''
