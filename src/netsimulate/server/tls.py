"""Server-side TLS context loading."""

from __future__ import annotations

import ssl

from netsimulate.exceptions import ConfigurationError


def build_server_ssl_context(
    cert_file: str,
    key_file: str,
    *,
    http2: bool = False,
) -> ssl.SSLContext:
    """Create the TLS context used by the NORMAL_HTTP engines.

    Args:
        cert_file: PEM certificate path.
        key_file: PEM private key path.
        http2: Offer ``h2`` through ALPN before ``http/1.1``.

    Returns:
        A server-side SSLContext.

    Raises:
        ConfigurationError: If the certificate or key cannot be loaded.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        ctx.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as exc:
        raise ConfigurationError(
            f"cannot load TLS credentials ({cert_file}, {key_file}): {exc}"
        ) from exc
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.set_alpn_protocols(["h2", "http/1.1"] if http2 else ["http/1.1"])
    return ctx
