from __future__ import annotations

import logging

from .config import ClientConfig, require_directory
from .constants import ENCODING
from .engine import SessionStats, SyncEngine, run_engine
from .net import TcpEndpoint
from .storage import scan_manifest

log = logging.getLogger(__name__)


def run_client(config: ClientConfig) -> SessionStats:
    require_directory(config.root)
    files = scan_manifest(config.root)
    log.info("client starting; root=%s files=%d", config.root, len(files))

    endpoint = TcpEndpoint.connect(config.host, config.port)
    log.info("connected; server=%s:%d", config.host, config.port)
    engine = SyncEngine(config.root, endpoint, chunk_size=config.chunk_size, known_files=files)
    try:
        engine.connection_made(config.api_key.encode(ENCODING))
    except OSError:
        endpoint.close()
        raise
    stats = run_engine(engine, endpoint)
    log.info(
        "client done; received=%d sent=%d seconds=%.2f",
        stats.files_received,
        stats.files_sent,
        stats.duration_s,
    )
    return stats
