import logging

from fastapi import FastAPI

from .gemini_client import GeminiClient
from .routers import ai
from .service import TutorService
from .settings import settings

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title="AI Typing Tutor API")
app.include_router(ai.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"openrouter_configured": bool(settings.openrouter_api_key),
	}


@app.on_event("startup")
async def startup_event():
	client = GeminiClient()
	if not client.configured:
		logger.warning("No language-model provider configured; answers will come from fallbacks")
	app.state.gemini_client = client
	ai.set_tutor_service(TutorService(client))


@app.on_event("shutdown")
async def shutdown_event():
	client = getattr(app.state, "gemini_client", None)
	if client is not None:
		await client.aclose()
	ai.set_tutor_service(None)
