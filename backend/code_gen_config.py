"""
Code Generation Configuration
后端配置文件

All settings are read from the environment (and an optional .env file).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ==================== Container Service Configuration ====================
# 容器服务配置

CONTAINER_API_URL = os.getenv("CONTAINER_API_URL", "http://localhost:4000")
MAIN_API_KEY = os.getenv("MAIN_API_KEY", "")
CONTAINER_API_TIMEOUT = float(os.getenv("CONTAINER_API_TIMEOUT", "120"))

# Settling delays after container operations (seconds)
CONTAINER_START_SETTLE_SECONDS = float(os.getenv("CONTAINER_START_SETTLE_SECONDS", "10"))
PREVIEW_URL_SETTLE_SECONDS = float(os.getenv("PREVIEW_URL_SETTLE_SECONDS", "25"))

# ==================== Claude Proxy Configuration ====================
# 中转服务配置

USE_CLAUDE_PROXY = os.getenv("USE_CLAUDE_PROXY", "false").lower() in ("true", "1", "yes")
CLAUDE_PROXY_API_KEY = os.getenv("CLAUDE_PROXY_API_KEY", "")
CLAUDE_PROXY_BASE_URL = os.getenv("CLAUDE_PROXY_BASE_URL", "")
CLAUDE_PROXY_MODEL = os.getenv("CLAUDE_PROXY_MODEL", "")

# Direct Anthropic API (fallback)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# ==================== Agent Configuration ====================
# Agent 配置

AGENT_MODEL = os.getenv("AGENT_MODEL", "claude-sonnet-4-5-20250929")
AGENT_MAX_TOKENS = int(os.getenv("AGENT_MAX_TOKENS", "16384"))
ROUTING_MODEL = os.getenv("ROUTING_MODEL", AGENT_MODEL)
ROUTING_MAX_TOKENS = int(os.getenv("ROUTING_MAX_TOKENS", "2048"))

CODE_NETWORK_MAX_ITERATIONS = int(os.getenv("CODE_NETWORK_MAX_ITERATIONS", "25"))
ROUTING_NETWORK_MAX_ITERATIONS = int(os.getenv("ROUTING_NETWORK_MAX_ITERATIONS", "1"))

# What to do when the routing agent's markers can't be parsed: "general_chat" or "drop"
ROUTING_FALLBACK = os.getenv("ROUTING_FALLBACK", "general_chat")

# ==================== Storage Configuration ====================
# 存储配置

DATA_DIR = Path(os.getenv("DATA_DIR", str(Path(__file__).parent / "data")))

# ==================== Server Configuration ====================
# 服务器配置

SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "5100"))
