#!/usr/bin/env python3
"""
Run script for the Identity Service API.
This script launches the FastAPI server with the auth and user lookup routers mounted.
"""
import os
import uvicorn
import sys
import traceback

if __name__ == "__main__":
    try:
        port = int(os.getenv("PORT", 8000))
        print("Starting Identity Service API server...")
        print(f"Access the API at http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        uvicorn.run(
            "identity_service.main:app",
            host="0.0.0.0",
            port=port,
            reload=os.getenv("RELOAD", "false").lower() == "true",
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
