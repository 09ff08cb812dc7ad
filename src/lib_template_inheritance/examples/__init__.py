"""Example template helpers for ``lib_template_inheritance``."""

from .generate import EXAMPLE_CONTEXT_NAME, EXAMPLE_TEMPLATE_NAME, ExampleSpec, generate_examples

__all__ = [
    "EXAMPLE_CONTEXT_NAME",
    "EXAMPLE_TEMPLATE_NAME",
    "ExampleSpec",
    "generate_examples",
]
