"""Prompt normalisation and inference payload construction.

Stable Diffusion v1.x follows English prompts far better than other
languages.  Prompts made only of ASCII letters and whitespace are sent as-is;
anything else (other scripts, digits, punctuation) gets a fixed style suffix
so the output keeps a consistent meme look.  This is a character-class test,
not language detection or translation.

Example:
    >>> normalize_prompt("happy dog")
    'happy dog'
    >>> normalize_prompt("开心的狗")
    '开心的狗 (meme style, funny, humorous, high quality)'
"""

from __future__ import annotations

import re

from .config import DEFAULT_STYLE_SUFFIX

_PLAIN_LETTERS = re.compile(r"[a-zA-Z\s]+")


def is_plain_english(prompt: str) -> bool:
    """Check if ``prompt`` consists only of ASCII letters and whitespace.

    An empty prompt does not match.
    """
    return _PLAIN_LETTERS.fullmatch(prompt) is not None


def normalize_prompt(prompt: str, style_suffix: str = DEFAULT_STYLE_SUFFIX) -> str:
    """Return the prompt to send to the model.

    Args:
        prompt: Prompt as typed by the user
        style_suffix: Suffix appended when the prompt is not plain letters

    Returns:
        ``prompt`` unchanged, or ``prompt + style_suffix``
    """
    if is_plain_english(prompt):
        return prompt
    return prompt + style_suffix


def build_payload(
    prompt: str,
    *,
    num_inference_steps: int = 30,
    guidance_scale: float = 7.5,
    width: int = 512,
    height: int = 512,
) -> dict:
    """Build the JSON body for one text-to-image inference request.

    Args:
        prompt: Normalised prompt
        num_inference_steps: Diffusion steps
        guidance_scale: Classifier-free guidance scale
        width: Output width in pixels
        height: Output height in pixels

    Returns:
        ``{"inputs": prompt, "parameters": {...}}``
    """
    return {
        "inputs": prompt,
        "parameters": {
            "num_inference_steps": num_inference_steps,
            "guidance_scale": guidance_scale,
            "width": width,
            "height": height,
        },
    }
