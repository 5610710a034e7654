"""Prompt and UI utilities."""

from ssh_socks_proxy.core.utils.prompt.prompt import PromptHandler, console
from ssh_socks_proxy.core.utils.prompt.proxy_ui import ProxyUI, create_proxy_ui
from ssh_socks_proxy.core.utils.prompt.socks_ui import SocksUI, socks_ui

__all__ = ["console", "create_proxy_ui", "PromptHandler", "ProxyUI", "SocksUI", "socks_ui"]
