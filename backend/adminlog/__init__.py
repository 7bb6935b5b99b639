"""
Admin activity audit service.

Audit trail, log exports and real-time notifications for the storefront
admin console.
"""

__version__ = "1.0.0"
