"""
HTTP middleware.

Provides:
- OperatorKeySanitizerMiddleware: rewrites $ and . in user-supplied keys
- AdminActivityMiddleware: records mutating admin requests to the audit trail
"""
