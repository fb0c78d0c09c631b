"""Cloudflare Image Proxy — FastAPI REST API layer.

Modules
-------
main
    ``create_app()`` application factory, route handlers, exception handlers
    and the ``main()`` CLI entry point.
models
    Pydantic models for the JSON response bodies.
"""
