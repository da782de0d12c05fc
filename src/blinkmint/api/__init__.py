"""Blinkmint — FastAPI layer.

This package contains the FastAPI application, the Solana Actions documents
and the Pydantic request/response models.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
actions
    Actions discovery document, ``actions.json`` rules, CORS headers and
    :class:`ActionError`.
models
    Pydantic models for API request and response validation.
"""
