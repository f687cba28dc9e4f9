import os


class Warming:
    def __init__(self, config: dict | None = None) -> None:
        warm_cfg = (config or {}).get("knowledgecache", {}).get("warming", {})
        self.MAX_PATTERNS: int = int(warm_cfg.get("max_patterns", os.getenv("WARM_MAX_PATTERNS", "20")))
        self.CONTENT_PREVIEW_CHARS: int = int(
            warm_cfg.get("content_preview_chars", os.getenv("WARM_CONTENT_PREVIEW_CHARS", "500"))
        )
        self.WARM_CONCURRENCY: int = int(warm_cfg.get("warm_concurrency", os.getenv("WARM_CONCURRENCY", "5")))
        # Seconds between background cache refreshes; 0 disables the loop.
        self.REFRESH_INTERVAL: float = float(warm_cfg.get("refresh_interval", os.getenv("CACHE_REFRESH_INTERVAL", "0")))
