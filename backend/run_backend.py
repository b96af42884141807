"""Run the API under uvicorn: python -m backend.run_backend"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "backend.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
