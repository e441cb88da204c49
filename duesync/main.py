from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    host = os.getenv("DUESYNC_HOST", "127.0.0.1")
    port = int(os.getenv("DUESYNC_PORT", "8080"))
    logging.basicConfig(
        level=os.getenv("DUESYNC_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("duesync.web_admin:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
