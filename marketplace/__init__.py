"""Marketplace backend: session management and authorization layer."""
