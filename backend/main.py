"""
Fragment Agent Backend
统一 FastAPI 入口

AI agents that build, update and fix web apps inside remote containers.

启动方式:
    python main.py
    或
    uvicorn main:app --reload --port 5100
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import code_gen_config as config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Fragment Agent API",
    description="AI agents that build, update and fix web apps in containers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Register Routers
# ============================================

# Conversation module (chat endpoints, file-based storage)
from conversation.routes import router as conversation_router
app.include_router(conversation_router)
logger.info("Registered: /api/projects/{project_id}/ai/*")


# ============================================
# Root Endpoints
# ============================================

@app.get("/")
async def root():
    """Root endpoint - API info"""
    return {
        "name": "Fragment Agent API",
        "version": "1.0.0",
        "description": "AI agents that build, update and fix web apps in containers",
        "docs": "/docs",
        "endpoints": {
            "ai": "/api/projects/{project_id}/ai",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "fragment-agent",
        "version": "1.0.0",
    }


# ============================================
# Startup/Shutdown Events
# ============================================

@app.on_event("startup")
async def startup_event():
    """Wire the workflow functions to the event bus"""
    from agent import create_llm_client
    from container import get_container_gateway
    from conversation import conversation_store
    from workflows import FragmentWorkflows, get_event_bus, register_workflows

    logger.info("=" * 50)
    logger.info("Fragment Agent API Starting...")
    logger.info("=" * 50)

    if not config.MAIN_API_KEY:
        logger.warning("MAIN_API_KEY not set - container service calls will be unauthenticated")

    try:
        llm = create_llm_client()
    except ValueError as e:
        logger.warning(f"{e} - Agent workflows are disabled!")
        return

    workflows = FragmentWorkflows(
        llm=llm,
        gateway=get_container_gateway(),
        store=conversation_store,
        bus=get_event_bus(),
    )
    register_workflows(get_event_bus(), workflows)
    logger.info(f"Container service: {config.CONTAINER_API_URL}")
    logger.info(f"API documentation available at: http://localhost:{config.SERVER_PORT}/docs")


@app.on_event("shutdown")
async def shutdown_event():
    """Let dispatched workflows finish, then release the gateway"""
    from container import close_container_gateway
    from workflows import get_event_bus

    logger.info("Fragment Agent API Shutting down...")
    await get_event_bus().drain()
    await close_container_gateway()


# ============================================
# Main Entry Point
# ============================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", str(config.SERVER_PORT)))

    uvicorn.run(
        "main:app",
        host=config.SERVER_HOST,
        port=port,
        reload=True,
        log_level="info",
    )
