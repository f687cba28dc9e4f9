import os

from .loader import as_bool


class Retrieval:
    def __init__(self, config: dict | None = None) -> None:
        retrieval_cfg = (config or {}).get("knowledgecache", {}).get("retrieval", {})
        self.DEFAULT_THRESHOLD: float = float(
            retrieval_cfg.get("default_threshold", os.getenv("RETRIEVAL_DEFAULT_THRESHOLD", "0.15"))
        )
        self.DEFAULT_LIMIT: int = int(retrieval_cfg.get("default_limit", os.getenv("RETRIEVAL_DEFAULT_LIMIT", "5")))
        self.MAX_LIMIT: int = int(retrieval_cfg.get("max_limit", os.getenv("RETRIEVAL_MAX_LIMIT", "50")))
        self.MAX_QUERY_LENGTH: int = int(
            retrieval_cfg.get("max_query_length", os.getenv("RETRIEVAL_MAX_QUERY_LENGTH", "1000"))
        )
        self.PERFORMANCE_THRESHOLD_MS: float = float(
            retrieval_cfg.get("performance_threshold_ms", os.getenv("RETRIEVAL_PERFORMANCE_THRESHOLD_MS", "5000"))
        )
        self.EMBEDDING_TIMEOUT_S: float = float(
            retrieval_cfg.get("embedding_timeout_s", os.getenv("RETRIEVAL_EMBEDDING_TIMEOUT_S", "10"))
        )
        self.INITIALIZATION_TIMEOUT_S: float = float(
            retrieval_cfg.get("initialization_timeout_s", os.getenv("RETRIEVAL_INITIALIZATION_TIMEOUT_S", "30"))
        )
        expect_raw = retrieval_cfg.get("expect_non_empty", os.getenv("RETRIEVAL_EXPECT_NON_EMPTY", "0"))
        self.EXPECT_NON_EMPTY: bool = as_bool(expect_raw)
