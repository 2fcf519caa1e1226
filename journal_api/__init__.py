"""Options trading journal service.

The application code lives under ``journal_api.app``; the HTTP entry point is
``journal_api.app.main:app``.
"""
