"""Gateway server entry point for python -m clipchain.api"""
import uvicorn
from clipchain.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "clipchain.api.app:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        reload=False,
    )
