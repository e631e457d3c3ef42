"""Gradio user interface for Memeforge."""
