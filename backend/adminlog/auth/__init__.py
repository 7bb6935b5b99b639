"""
Actor authentication.

Provides:
- TokenService: issue/verify HS256 actor tokens
- ActorContextMiddleware: attaches request.state.actor
- get_current_actor / require_admin: route dependencies
"""
