"""Startup script for container deployments (reads PORT from the environment)."""
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8001))
    print(f"Starting EcoRecicla API on port {port}", flush=True)
    uvicorn.run(
        "ecorecicla.app:app",
        host="0.0.0.0",
        port=port,
        log_level="info",
        proxy_headers=True,
    )
