"""Process entry point: `python main.py` or `uvicorn main:app`."""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

from app.main import app  # noqa: E402

logger = logging.getLogger("scheduler.server")

__all__ = ['app']

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8080))
    logger.info(f"Serving scheduling backend on 0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
