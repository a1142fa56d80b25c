"""ASGI entrypoint for the billing dashboard API."""

import os

from .core.app_factory import create_application

app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "billing_dashboard.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
