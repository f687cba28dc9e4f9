import os


class VectorCache:
    def __init__(self, config: dict | None = None) -> None:
        cache_cfg = (config or {}).get("knowledgecache", {}).get("vector_cache", {})
        self.EMB_DIM: int = int(cache_cfg.get("emb_dim", os.getenv("EMB_DIM", "1536")))
        self.MAX_VECTORS: int = int(cache_cfg.get("max_vectors", os.getenv("VECTOR_CACHE_MAX_VECTORS", "10000")))
        # 50 MiB
        self.MAX_MEMORY_KB: int = int(cache_cfg.get("max_memory_kb", os.getenv("VECTOR_CACHE_MAX_MEMORY_KB", "51200")))
        self.EVICTION_BATCH_SIZE: int = int(
            cache_cfg.get("eviction_batch_size", os.getenv("VECTOR_CACHE_EVICTION_BATCH_SIZE", "100"))
        )
        # Per-record overhead on top of the raw float32 payload (metadata + bookkeeping).
        self.METADATA_OVERHEAD_BYTES: int = int(
            cache_cfg.get("metadata_overhead_bytes", os.getenv("VECTOR_CACHE_METADATA_OVERHEAD_BYTES", "1024"))
        )
