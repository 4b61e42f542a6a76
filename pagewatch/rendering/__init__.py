from pagewatch.rendering.models import FetchedPage, FetchOptions, Viewport
from pagewatch.rendering.engine import (
    PageFetcher,
    PlaywrightPageFetcher,
    HttpPageFetcher,
    build_fetcher,
)
