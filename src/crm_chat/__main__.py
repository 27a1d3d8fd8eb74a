"""Entrypoint: python -m crm_chat"""
from __future__ import annotations

import uvicorn

from crm_chat.app import configure_logging


def main() -> None:
    configure_logging()
    uvicorn.run(
        "crm_chat.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
