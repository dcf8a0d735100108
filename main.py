import logging

from dotenv import load_dotenv

from config_manager import load_config
from web import run_web

# 本機用 .env，部署平台的環境變數優先
load_dotenv()

settings = load_config()

logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

if __name__ == "__main__":
    run_web(settings)
