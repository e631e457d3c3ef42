"""Memeforge — FastAPI REST API layer.

Modules
-------
main
    FastAPI application with the REST routes, the mounted Gradio UI, and the
    ``main()`` CLI entry point.
models
    Pydantic models for API request validation.
"""
