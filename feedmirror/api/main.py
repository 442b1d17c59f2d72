import argparse
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse

from feedmirror.config.context import ServiceContext
from feedmirror.config.settings import Settings
from feedmirror.errors import ConfigError, StorageError
from feedmirror.refresher.refresh_coordinator import REFRESH_INTERVAL_MINUTES, RefreshCoordinator
from feedmirror.storage.item_cache import TORRENT_EXT

logger = logging.getLogger(__name__)

RSS_MEDIA_TYPE = "application/xml; charset=utf-8"
TORRENT_MEDIA_TYPE = "application/x-bittorrent"


def build_scheduler() -> BackgroundScheduler:
    # sem empilhamento de jobs: um ciclo por vez, atrasos coalescidos
    return BackgroundScheduler(
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 30,
        }
    )


def create_app(
    ctx: ServiceContext,
    coordinator: Optional[RefreshCoordinator] = None,
    scheduler=None,
) -> FastAPI:
    coordinator = coordinator or RefreshCoordinator(ctx)
    scheduler = scheduler or build_scheduler()
    store = coordinator.store
    torrent_dir = ctx.settings.torrent_dir

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        os.makedirs(torrent_dir, exist_ok=True)
        # first run right away, then every REFRESH_INTERVAL_MINUTES
        scheduler.add_job(
            coordinator.refresh,
            "interval",
            minutes=REFRESH_INTERVAL_MINUTES,
            id="refresh_rss",
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        logger.info("Server started on port %s. RSS available at %s/rss", ctx.settings.port, ctx.settings.base_url)
        yield
        scheduler.shutdown(wait=False)

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(GZipMiddleware, minimum_size=512)
    app.state.ctx = ctx
    app.state.coordinator = coordinator

    @app.get("/health")
    def health():
        return {"status": "ok", "ts": int(time.time())}

    @app.get("/last-update")
    def last_update():
        resp = JSONResponse({
            "status": "success",
            "state": coordinator.state.value,
            "last_update": coordinator.last_refreshed,
        })
        resp.headers["Cache-Control"] = "public, max-age=5"
        return resp

    @app.get("/rss")
    def serve_rss():
        try:
            data = store.read()
        except StorageError as e:
            logger.error("Error reading published RSS: %s", e)
            raise HTTPException(500, "RSS not available")
        if data is None:
            raise HTTPException(500, "RSS not available")
        return Response(content=data, media_type=RSS_MEDIA_TYPE)

    @app.get("/torrents/{name}")
    def serve_torrent(name: str):
        if ".." in name:
            raise HTTPException(400, "Invalid file request")
        path = os.path.join(torrent_dir, os.path.basename(name))
        logger.debug("Serving torrent: %s", path)
        if not name.endswith(TORRENT_EXT) or not os.path.isfile(path):
            raise HTTPException(404, "Torrent not found")
        return FileResponse(path, media_type=TORRENT_MEDIA_TYPE)

    @app.post("/force-update")
    def force_update():
        published = coordinator.refresh()
        return {"status": "success" if published else "unchanged", "last_update": coordinator.last_refreshed}

    return app


def parse_args(argv=None) -> dict:
    parser = argparse.ArgumentParser(description="Mirror a torrent RSS feed with patched tracker URLs.")
    parser.add_argument("--rss", dest="REMOTE_RSS", help="remote RSS feed URL")
    parser.add_argument("--tracker", dest="TRACKER_ID", help="tracker id to substitute")
    parser.add_argument("--uid", dest="COOKIE_UID", help="uid cookie")
    parser.add_argument("--usess", dest="COOKIE_USESS", help="usess cookie")
    parser.add_argument("--ignore-quality", dest="IGNORE_QUALITY",
                        help='ignored qualities, comma separated (e.g. "SD,MP4")')
    parser.add_argument("--port", dest="PORT", help="HTTP server port")
    parser.add_argument("--base-url", dest="BASE_URL",
                        help="public base URL for local links (e.g. http://your_domain.com:8080)")
    parser.add_argument("--cache-dir", dest="CACHE_DIR", help="cache directory")
    return vars(parser.parse_args(argv))


def main(argv=None):
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        settings = Settings.from_env(parse_args(argv))
    except ConfigError as e:
        logger.error("%s", e)
        raise SystemExit(1)

    ctx = ServiceContext.create(settings)
    uvicorn.run(create_app(ctx), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
