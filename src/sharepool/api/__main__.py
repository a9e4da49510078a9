# src/sharepool/api/__main__.py
from __future__ import annotations

import uvicorn

from sharepool.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so SHAREPOOL_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from sharepool.api.app import create_app
    from sharepool.api.structured_logging import configure_structured_logging
    from sharepool.runtime.pool_config import load_pool_config, normalize_log_level

    cfg = load_pool_config()
    configure_structured_logging(cfg.log_level)

    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=normalize_log_level(cfg.log_level).lower())


if __name__ == "__main__":
    main()
