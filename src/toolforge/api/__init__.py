"""ToolForge FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request/response
models, and the frame responder helpers.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
frames
    Frame document rendering, the static frame image and hub verification.
"""
