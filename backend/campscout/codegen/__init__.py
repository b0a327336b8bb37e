"""Code generation service client package."""
