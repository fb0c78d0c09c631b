"""Cloudflare Image Proxy - text prompts in, Stable Diffusion images out."""

__version__ = "0.1.0"

from cfimage.core.config import ProxyConfig, config

__all__ = [
    "ProxyConfig",
    "config",
]
