import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))

    print("Starting Behavior Models Training API...")
    print(f"Docs available at: http://localhost:{port}/docs")

    uvicorn.run(
        "behavior_models.api.server:app",
        host="0.0.0.0",
        port=port,
        reload=True
    )
