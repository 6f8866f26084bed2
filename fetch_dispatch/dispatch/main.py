import sys

from fetch_dispatch.core.config import get_request_options, is_production
from fetch_dispatch.core.httpx_client import HttpxTransport
from fetch_dispatch.dispatch.batch import BatchFetcher
from fetch_dispatch.dispatch.dispatcher import FetchDispatcher
from fetch_dispatch.dispatch.middleware import RequestMiddleware


def build_batch_fetcher() -> BatchFetcher:
    """Assemble transport, middleware de debug et dispatcher depuis la configuration."""
    options = get_request_options()
    middleware = RequestMiddleware(is_production=is_production())
    transport = HttpxTransport(options=options, middleware=middleware)
    return BatchFetcher(FetchDispatcher(transport=transport, options=options))


def main(argv=None) -> int:
    urls = list(sys.argv[1:] if argv is None else argv)
    if not urls:
        print("usage: python -m fetch_dispatch.dispatch.main URL [URL ...]", file=sys.stderr)
        return 2

    print(f"\n⏳ Récupération asynchrone de {len(urls)} URL(s)...\n")

    fetcher = build_batch_fetcher()
    fetcher.fetch_all(
        urls,
        on_blank=lambda content: print("⚪ blank"),
        on_body=lambda content: print(f"✅ body ({len(content)} chars): {content[:80]!r}"),
        on_error=lambda cause: print(f"❌ {cause.url}: {cause}"),
        on_drain=lambda: print("\n🏁 Terminé."),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
