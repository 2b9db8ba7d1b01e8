# src/netspamlock/utils/logger.py
import logging, os

LOG_ENV = "NETSPAMLOCK_LOG_DIR"
LOG_FILE = "netspamlock.log"

def get_logger(name="netspamlock"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        log_dir = os.environ.get(LOG_ENV, "logs")
        os.makedirs(log_dir, exist_ok=True)
        logger.setLevel(logging.INFO)
        fh = logging.FileHandler(os.path.join(log_dir, LOG_FILE))
        fmt = logging.Formatter('%(asctime)s %(levelname)s: %(message)s')
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger
