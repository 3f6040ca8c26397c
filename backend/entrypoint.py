"""
Entrypoint for running the backend server with uvicorn.
"""
import os

import uvicorn

from babyregistry.main import app

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
