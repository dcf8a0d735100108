# Serverless 入口：平台會從這裡 import app
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv  # noqa: E402

from config_manager import load_config  # noqa: E402
from web import create_app  # noqa: E402

load_dotenv()

settings = load_config()
logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

app = create_app(settings)
