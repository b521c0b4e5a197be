"""Robyn route registration for both protocol surfaces.

Each module exposes a ``register_*_routes(app, ...)`` function that binds
its endpoints onto a Robyn application (or any object with the same
decorator interface).
"""
