import os

import uvicorn


def main() -> None:
    # uvicorn owns signal handling; SIGINT/SIGTERM drain requests and run the lifespan shutdown
    uvicorn.run(
        "task_server.app.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
