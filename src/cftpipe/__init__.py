"""cftpipe: expose a local port on a public hostname via Cloudflare Tunnel."""

__version__ = "1.0.0"

_LAZY_IMPORTS = {
    "CloudflareClient": "cftpipe.cloudflare",
    "Configuration": "cftpipe.state",
    "HistoryEntry": "cftpipe.state",
    "StateStore": "cftpipe.state",
    "detect_port": "cftpipe.ports",
    "generate_slug": "cftpipe.slug",
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        import importlib

        module = importlib.import_module(_LAZY_IMPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module 'cftpipe' has no attribute {name}")


__all__ = [*_LAZY_IMPORTS]
