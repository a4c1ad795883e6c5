"""
LTI 1.3 roster tool.

Completes LTI launches and renders the launching course's roster, fetched
from the platform's Names and Role Provisioning Services.
"""

__version__ = "0.1.0"
