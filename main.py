import sys
from logisync.core.config import settings

def run_http(port: int = 8000, reload: bool = False):
    """Run the HTTP API server"""
    import uvicorn
    print(f"🚀 Starting LogiSync on port {port}...")
    uvicorn.run(
        "logisync.main:app",  # Use string import
        host="0.0.0.0",
        port=port,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower()
    )

if __name__ == "__main__":
    port = 8000
    if "--port" in sys.argv:
        port = int(sys.argv[sys.argv.index("--port") + 1])
    run_http(port=port, reload=settings.DEBUG or "--reload" in sys.argv)
