import os
from dotenv import load_dotenv

load_dotenv()

# Server Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma separated list of allowed origins; "*" allows everything.
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
