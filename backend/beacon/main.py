import asyncio
import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes_monitors import router as monitors_router
from .api.routes_notifications import router as notifications_router
from .api.routes_status_pages import router as status_pages_router
from .api.routes_subscribers import router as subscribers_router
from .config import settings
from .core.database import Base, engine, SessionLocal
from .core.delivery_queue import DeliveryQueue, QueueProcessor
from .core.errors import BeaconError, error_status
from .core.monitor_checker import monitor_checker_loop
from .core.seed import seed_initial_data
from .core.transport import TransportSelector

logging.basicConfig(
    level=settings.log_level.upper(),
    format="[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
)

# Public subscriber endpoints are embedded in status pages served from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Mail services are built once per process
transport = TransportSelector(SessionLocal)
delivery_queue = DeliveryQueue(
    transport,
    SessionLocal,
    batch_size=settings.queue_batch_size,
    max_attempts=settings.queue_max_attempts,
)
queue_processor = QueueProcessor(delivery_queue, interval_seconds=settings.queue_interval_seconds)

app.state.delivery_queue = delivery_queue
app.state.queue_processor = queue_processor


@app.exception_handler(BeaconError)
async def beacon_error_handler(request: Request, exc: BeaconError):
    return JSONResponse(status_code=error_status(exc), content={"ok": False, "msg": str(exc)})


@app.on_event("startup")
async def startup_event():
    # Create tables
    Base.metadata.create_all(bind=engine)

    # Seed if empty
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            seed_initial_data(db)
        finally:
            db.close()

    # Start notification queue processor
    queue_processor.start()

    # Start monitor checker
    app.state.monitor_task = asyncio.create_task(
        monitor_checker_loop(delivery_queue, settings.monitor_check_interval_seconds)
    )
    logger.info("%s ready", settings.app_name)


@app.on_event("shutdown")
async def shutdown_event():
    queue_processor.stop()

    task = getattr(app.state, "monitor_task", None)
    if task is not None:
        task.cancel()
        app.state.monitor_task = None


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.utcnow().isoformat() + "Z"}


app.include_router(subscribers_router)
app.include_router(status_pages_router)
app.include_router(monitors_router)
app.include_router(notifications_router)
