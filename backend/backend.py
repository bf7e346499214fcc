import logging
import os

from dotenv import load_dotenv

# Force load .env from the script's directory before settings are read.
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path)

from lms_module.app import create_app  # noqa: E402

# Configure Logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "3000"))
    logger.info(f"Server running on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
