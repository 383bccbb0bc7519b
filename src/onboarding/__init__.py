"""Guided product-tour engine.

Headless core (catalog, controller, resolver, placement, persistence) with an
optional PyQt6 presentation layer under ``onboarding.components``. Build a
wired context with ``onboarding.app.bootstrap.create_app``.
"""

__version__ = "0.1.0"
