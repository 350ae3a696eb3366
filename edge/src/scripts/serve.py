from __future__ import annotations

import argparse
import logging
import socket
import sys

import uvicorn

from edge.src import config
from edge.src.errors import BindError


logger = logging.getLogger("edge.serve")


def bind_socket(host: str, port: int) -> socket.socket:
    """Claim the listening socket up front. Failure is fatal, never retried."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise BindError(host, port, e.strerror or str(e)) from e
    sock.set_inheritable(True)
    return sock


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("edge").setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger("edge.banner").setLevel(logging.INFO)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the exhibition app Edge Router.")
    parser.add_argument("--host", default=config.HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    parser.add_argument("--static-dir", default=config.STATIC_DIR)
    parser.add_argument("--verbose", action="store_true", default=config.EDGE_VERBOSE)
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    try:
        sock = bind_socket(args.host, args.port)
    except BindError as e:
        logger.error("bind_failed %s", e)
        raise SystemExit(1)

    from edge.src.app.main import create_app

    app = create_app(verbose=args.verbose, static_dir=args.static_dir, port=args.port)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            log_level="info" if args.verbose else "warning",
            access_log=args.verbose,
            # Idle keep-alive connections from the browser; upstream timeouts are separate.
            timeout_keep_alive=5,
        )
    )
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
    if not server.started:
        sys.exit(1)


if __name__ == "__main__":
    main()
