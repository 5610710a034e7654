"""Allow running the proxy with ``python -m ssh_socks_proxy``."""

from ssh_socks_proxy.cmd.cli import app

app(prog_name="ssh-socks-proxy")
