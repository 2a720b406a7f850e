"""Nog Auth: authentication service and RBAC admin console."""

__version__ = "1.0.0"
