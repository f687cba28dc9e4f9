"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .vector_cache import VectorCache
from .retrieval import Retrieval
from .embeddings import Embeddings
from .store import Store
from .warming import Warming

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

vector_cache = VectorCache(_RAW_CONFIG)
retrieval = Retrieval(_RAW_CONFIG)
embeddings = Embeddings(_RAW_CONFIG)
store = Store(_RAW_CONFIG)
warming = Warming(_RAW_CONFIG)


class Config:
    vector_cache = vector_cache
    retrieval = retrieval
    embeddings = embeddings
    store = store
    warming = warming


__all__ = ["vector_cache", "retrieval", "embeddings", "store", "warming", "Config"]
