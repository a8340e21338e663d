"""
Servers Package.

FastAPI applications:
- servicenow: mock ServiceNow GRC table API (port 3000)
- slack: mock Slack workspace (port 3002)

Import the submodules directly; each builds a default app at import time.
"""
