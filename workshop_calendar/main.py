from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    host = os.getenv("WORKSHOP_CALENDAR_HOST", "0.0.0.0")
    port = int(os.getenv("WORKSHOP_CALENDAR_PORT", "8080"))
    logging.basicConfig(
        level=os.getenv("WORKSHOP_CALENDAR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("workshop_calendar.web_app:create_app", factory=True, host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
