from storefront.auth.roles import Role, SessionToken, resolve_role

__all__ = ["Role", "SessionToken", "resolve_role"]
