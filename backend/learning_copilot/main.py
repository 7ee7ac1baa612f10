from contextlib import asynccontextmanager, suppress
from datetime import timedelta
import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .cleanup import cleanup_watcher
from .dependencies import get_conversations, get_gateway, get_key_manager, get_quiz_generator, get_quiz_store
from .gateway import PROVIDER_PRIORITY
from .settings import settings
from .routers import analytics, auth, chat, keys, quiz

logger = logging.getLogger(__name__)


def configure_logging() -> None:
	logging.basicConfig(
		level=getattr(logging, settings.log_level.upper(), logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


@asynccontextmanager
async def lifespan(app: FastAPI):
	configure_logging()
	task = None
	if settings.cleanup_interval_seconds > 0:
		task = asyncio.create_task(cleanup_watcher(
			get_quiz_store(),
			get_key_manager(),
			timedelta(minutes=settings.quiz_session_ttl_minutes),
			settings.cleanup_interval_seconds,
			conversations=get_conversations(),
			conversation_ttl=timedelta(minutes=settings.conversation_ttl_minutes),
			rate_limiter=get_quiz_generator().rate_limiter,
		))
	logger.info("learning copilot started (quiz store: %s)", settings.quiz_store_backend)
	try:
		yield
	finally:
		if task is not None:
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		await get_gateway().aclose()


app = FastAPI(title="Learning Copilot API", lifespan=lifespan)
app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(keys.router)
app.include_router(quiz.router)
app.include_router(analytics.router)


@app.get("/health")
def health():
	return {"status": "ok"}


@app.get("/info")
def info():
	return {
		"status": "ok",
		"providers": [p.value for p in PROVIDER_PRIORITY],
		"quiz_store_backend": settings.quiz_store_backend,
	}
