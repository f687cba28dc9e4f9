import os


class Embeddings:
    def __init__(self, config: dict | None = None) -> None:
        emb_cfg = (config or {}).get("knowledgecache", {}).get("embeddings", {})
        openai_env = str(emb_cfg.get("openai_key_env", "OPENAI_API_KEY"))

        self.OPENAI_API_KEY: str | None = os.getenv(openai_env)
        self.EMB_MODEL_ID: str = str(emb_cfg.get("emb_model_id", os.getenv("EMB_MODEL_ID", "text-embedding-3-small")))
        self.EMB_CACHE_SIZE: int = int(emb_cfg.get("emb_cache_size", os.getenv("EMB_CACHE_SIZE", "1000")))
