#!/usr/bin/env python3
"""
Run script for the user service.
This script launches the FastAPI server built by user_service.main.create_app.
"""
import uvicorn
import sys
import traceback

from user_service.config import get_settings

if __name__ == "__main__":
    try:
        settings = get_settings()

        # Print information about the server
        print("Starting user service...")
        print(f"Access the API at http://localhost:{settings.port}/api/auth")
        print(f"API documentation at http://localhost:{settings.port}/docs")

        # Run the server
        uvicorn.run(
            "user_service.main:create_app",
            factory=True,
            host="0.0.0.0",
            port=settings.port,
            reload=settings.environment == "development",
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
