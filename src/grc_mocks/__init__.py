"""
Mock ServiceNow GRC and Slack servers for demoing GRC-to-chat integrations.
"""

__version__ = "1.0.0"
